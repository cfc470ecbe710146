"""
Softmax Classifier — Multinomial logistic regression over FeatureExtractor
vectors, trained with mini-batch SGD.

  logits = W·x + b
  probs  = softmax(logits)

Training shuffles every epoch, applies L2 weight decay to W only (never the
bias) and sizes batches from the sample count. Every call to train() builds
a fresh network and returns a brand-new, read-only ClassifierModel; a
previously returned model is never touched.
"""

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import TensorDataset, DataLoader

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG
from app.ml.frequency_analyzer import uniform


# ─── Trained Model Value ─────────────────────────────────────────────

class ClassifierModel:
    """Immutable weight matrix (|O| x D) + bias (|O|)."""

    def __init__(self, weights, bias, alphabet, samples=0, final_loss=None):
        weights = np.array(weights, dtype=np.float64)
        bias = np.array(bias, dtype=np.float64)
        if weights.ndim != 2 or bias.shape != (weights.shape[0],):
            raise ValueError(f"bad classifier shapes: W{weights.shape}, b{bias.shape}")
        if weights.shape[0] != len(alphabet):
            raise ValueError(f"W has {weights.shape[0]} rows for {len(alphabet)} outcomes")
        weights.setflags(write=False)
        bias.setflags(write=False)
        self.weights = weights
        self.bias = bias
        self.alphabet = tuple(alphabet)
        self.samples = int(samples)
        self.final_loss = final_loss

    @property
    def feature_dim(self):
        return self.weights.shape[1]

    def logits(self, x):
        return self.weights @ np.asarray(x, dtype=np.float64) + self.bias

    def predict(self, x):
        z = self.logits(x)
        z = z - z.max()
        e = np.exp(z)
        return e / e.sum()

    def to_state(self):
        """Tensors + plain metadata, loadable with torch.load(weights_only=True)."""
        return {
            'weights': torch.from_numpy(np.array(self.weights)),
            'bias': torch.from_numpy(np.array(self.bias)),
            'alphabet': list(self.alphabet),
            'samples': self.samples,
            'final_loss': self.final_loss,
        }

    @classmethod
    def from_state(cls, state):
        return cls(
            state['weights'].detach().cpu().numpy(),
            state['bias'].detach().cpu().numpy(),
            state['alphabet'],
            samples=state.get('samples', 0),
            final_loss=state.get('final_loss'),
        )


def classifier_distribution(model, x, num_outcomes):
    """Model prediction, or uniform when there is no (compatible) model."""
    if model is None or x is None or model.feature_dim != len(x):
        return uniform(num_outcomes)
    return model.predict(x)


# ─── Network ─────────────────────────────────────────────────────────

class LinearSoftmax(nn.Module):
    """Single linear layer; softmax lives in the loss / ClassifierModel."""

    def __init__(self, input_size, num_outcomes):
        super().__init__()
        self.linear = nn.Linear(input_size, num_outcomes)

    def forward(self, x):
        return self.linear(x)


# ─── Trainer ─────────────────────────────────────────────────────────

class SoftmaxClassifier:
    """Fits ClassifierModel values. Holds hyperparameters and a seeded RNG only."""

    def __init__(self, config=DEFAULT_CONFIG, seed=None,
                 learning_rate=None, epochs=None, l2=None):
        self.config = config
        self.learning_rate = config.learning_rate if learning_rate is None else learning_rate
        self.epochs = config.epochs if epochs is None else epochs
        self.l2 = config.l2 if l2 is None else l2
        self.generator = torch.Generator()
        if seed is None:
            self.generator.seed()
        else:
            self.generator.manual_seed(int(seed))

    def batch_size(self, n_samples):
        cfg = self.config
        return min(cfg.batch_max, max(cfg.batch_min, n_samples // 8))

    def _build_network(self, input_size):
        net = LinearSoftmax(input_size, self.config.num_outcomes)
        scale = self.config.init_scale
        with torch.no_grad():
            net.linear.weight.copy_(
                (torch.rand(net.linear.weight.shape, generator=self.generator) - 0.5) * scale
            )
            net.linear.bias.zero_()
        return net

    def train(self, X, y, progress=None):
        """Fit on (X, y). Returns a new ClassifierModel, or None when there are
        fewer than MIN_TRAINING_SAMPLES samples.

        `progress(epoch, loss)` is called after every epoch when given.
        """
        X = np.asarray(X, dtype=np.float32)
        y = np.asarray(y, dtype=np.int64)
        n = len(y)
        if n < self.config.min_training_samples or X.ndim != 2 or len(X) != n:
            return None

        net = self._build_network(X.shape[1])
        dataset = TensorDataset(torch.from_numpy(X), torch.from_numpy(y))
        loader = DataLoader(dataset, batch_size=self.batch_size(n),
                            shuffle=True, generator=self.generator)
        optimizer = torch.optim.SGD([
            {'params': [net.linear.weight], 'weight_decay': self.l2},
            {'params': [net.linear.bias], 'weight_decay': 0.0},
        ], lr=self.learning_rate)
        criterion = nn.CrossEntropyLoss()

        net.train()
        avg_loss = None
        for epoch in range(self.epochs):
            epoch_loss = 0.0
            for batch_x, batch_y in loader:
                optimizer.zero_grad()
                loss = criterion(net(batch_x), batch_y)
                loss.backward()
                optimizer.step()
                epoch_loss += loss.item()
            avg_loss = epoch_loss / len(loader)
            if progress is not None:
                progress(epoch + 1, avg_loss)

        with torch.no_grad():
            weights = net.linear.weight.detach().double().numpy()
            bias = net.linear.bias.detach().double().numpy()
        return ClassifierModel(
            weights, bias, self.config.alphabet, samples=n,
            final_loss=round(avg_loss, 6) if avg_loss is not None else None,
        )

    def train_on_history(self, history, extractor, progress=None):
        X, y = extractor.build_dataset(history)
        return self.train(X, y, progress=progress)
