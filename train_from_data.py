#!/usr/bin/env python3
"""
Command Tool - Work with the saved round history from the terminal.

Usage:
    python train_from_data.py [--multi] <command> [args]

Commands:
    import <file>       append every valid line of a file as one round
    add <round>         add one round, e.g. add RED  /  --multi add R,B,R,G,B
    predict             show the next-round distribution and pick
    show [n]            last n rounds (default 20)
    undo                remove the most recent round
    reset               clear history, weights and classifier
    evaluate            walk-forward backtest over the saved history
    tune [step]         grid-search ensemble weights and apply the best
    config              print the active configuration and weights
    saveweights         persist the current ensemble weights
    loadweights         reload ensemble weights from disk
    stats               chi-square / runs test / autocorrelation per slot
    train               fit and save the softmax classifier
    backtest <file>     walk-forward backtest over a file (history untouched)

--multi selects the five-slot R/B/G configuration instead of RED/BLACK/GREEN.
"""

import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import PredictorConfig, TUNE_STEP, DATA_DIR
from app.ml.ensemble import EnsemblePredictor
from app.ml.walk_forward import WalkForwardEvaluator
from app.session.history import History, InvalidObservationError, parse_round
from app.session.session_manager import HistoryStore


def load_rounds(filepath, config):
    """Rounds from a text file, one round per line, oldest first."""
    if not os.path.exists(filepath):
        print(f"  ERROR: File not found: {filepath}")
        sys.exit(1)

    rounds = []
    skipped = 0
    with open(filepath, 'r') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                rounds.append(parse_round(line, config))
            except InvalidObservationError as e:
                skipped += 1
                # First lines are likely a header
                if line_num > 3:
                    print(f"  WARNING: Line {line_num}: {e} skipped")
    return rounds, skipped


def _history_from_rounds(rounds, config):
    history = History(config)
    start = time.time()
    for i, outcomes in enumerate(rounds):
        history.append(outcomes, ts=start + i * 1e-3)
    return history


def print_prediction(prediction, config):
    print(f"\n  Prediction after {prediction['rounds']} rounds")
    print(f"  {'─' * 40}")
    for slot, dist in enumerate(prediction['distributions']):
        parts = '  '.join(f"{o}={dist[o] * 100:5.1f}%" for o in config.alphabet)
        print(f"  Slot {slot + 1}: {parts}  → {prediction['picks'][slot]}")
    print(f"  Classifier trained: {'yes' if prediction['classifier_trained'] else 'no'}")


def print_backtest(result, config):
    print(f"\n  Walk-forward backtest ({result['steps']} rounds scored, "
          f"min train {result['min_train']})")
    print(f"  {'─' * 40}")
    print(f"  Round accuracy: {result['round_accuracy'] * 100:.2f}% "
          f"({result['round_correct']}/{result['steps']})")
    print(f"  Slot accuracy:  {result['slot_accuracy'] * 100:.2f}% "
          f"({result['slot_correct']}/{result['slot_total']})")
    for outcome in config.alphabet:
        stats = result['per_outcome'][outcome]
        print(f"    {outcome:6s} {stats['correct']:4d}/{stats['total']:<4d} "
              f"({stats['accuracy'] * 100:.1f}%)")


def print_stats(report, config):
    for slot in report:
        chi = slot['chi_square']
        print(f"\n  Slot {slot['slot'] + 1}")
        counts = ', '.join(f"{o}={chi['counts'][o]}" for o in config.alphabet)
        print(f"    Counts:        {counts}")
        print(f"    Chi-square:    {chi['statistic']:.3f} (p={chi['p_value']:.4f})"
              f"{' ⚠️ significant' if chi['significant'] else ''}")
        runs = slot['runs_test']
        if runs is None:
            print("    Runs test:     not enough data")
        else:
            print(f"    Runs test:     {runs['runs']} runs, expected {runs['expected']:.1f}, "
                  f"z={runs['z']:.3f} (p={runs['p_value']:.4f})")
        ac = slot['lag1_autocorr']
        print(f"    Lag-1 autocorr: {'n/a' if ac is None else f'{ac:.4f}'}")


def run_command(command, args, predictor, store):
    config = predictor.config

    if command == 'import':
        if not args:
            print("  Usage: import <file>")
            return 1
        rounds, skipped = load_rounds(args[0], config)
        start = time.time()
        for i, outcomes in enumerate(rounds):
            predictor.history.append(outcomes, ts=start + i * 1e-3)
        store.save_history(predictor.history)
        print(f"  Imported {len(rounds)} rounds ({skipped} lines skipped), "
              f"history now {len(predictor.history)}")

    elif command == 'add':
        if not args:
            print("  Usage: add <round>")
            return 1
        # Each run is a fresh process: re-derive the pick this round is scored against
        predictor.predict()
        result = predictor.observe(' '.join(args), dedupe=False, auto_train=False)
        store.append_prediction_log(result['round'], result['previous_picks'],
                                    result['previous_distribution'], result['correct'],
                                    alphabet=config.alphabet)
        store.save_history(predictor.history)
        print(f"  Added {' '.join(result['round'])} (history {len(predictor.history)})")
        print_prediction(result['prediction'], config)

    elif command == 'predict':
        print_prediction(predictor.predict(), config)

    elif command == 'show':
        n = int(args[0]) if args else 20
        entries = predictor.history.entries[-n:]
        offset = len(predictor.history) - len(entries)
        for i, entry in enumerate(entries, offset + 1):
            stamp = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(entry.ts))
            print(f"  {i:5d}  {stamp}  {' '.join(entry.outcomes)}")
        if not entries:
            print("  History is empty")

    elif command == 'undo':
        removed = predictor.undo_last()
        if removed is None:
            print("  Nothing to undo")
        else:
            store.save_history(predictor.history)
            print(f"  Removed {' '.join(removed.outcomes)}")

    elif command == 'reset':
        predictor.reset()
        store.clear()

    elif command == 'evaluate':
        print_backtest(predictor.evaluate(), config)

    elif command == 'tune':
        step = float(args[0]) if args else TUNE_STEP
        result = predictor.tune(step=step)
        if result is None:
            print("  Not enough history to tune")
            return 1
        store.save_weights(predictor.weights)
        print(f"  Best weights:   {result['best_weights']}")
        print(f"  Slot accuracy:  {result['best_score'] * 100:.2f}% "
              f"over {result['steps']} rounds ({result['evaluated']} combinations)")

    elif command == 'config':
        for key, value in config.as_dict().items():
            print(f"  {key:28s} {value}")
        print(f"  {'weights':28s} {predictor.weights.as_dict()}")

    elif command == 'saveweights':
        if store.save_weights(predictor.weights):
            print(f"  Saved weights to {store.weights_path}")

    elif command == 'loadweights':
        weights = store.load_weights()
        if weights is None:
            print("  No saved weights")
            return 1
        predictor.set_weights(weights)
        print(f"  Loaded weights {weights.as_dict()}")

    elif command == 'stats':
        print_stats(predictor.randomness(), config)

    elif command == 'train':
        model = predictor.train_classifier()
        if model is None:
            return 1
        store.save_classifier(model)

    elif command == 'backtest':
        if not args:
            print("  Usage: backtest <file>")
            return 1
        rounds, _ = load_rounds(args[0], config)
        history = _history_from_rounds(rounds, config)
        evaluator = WalkForwardEvaluator(config, seed=predictor.seed)
        print_backtest(evaluator.evaluate(history, predictor.weights), config)

    else:
        print(__doc__)
        return 1
    return 0


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    config = PredictorConfig.single_stream()
    if '--multi' in argv:
        argv.remove('--multi')
        config = PredictorConfig.multi_slot()

    if not argv:
        print(__doc__)
        return 1

    store = HistoryStore(DATA_DIR)
    predictor = EnsemblePredictor(config)
    predictor.load_state(store)

    try:
        return run_command(argv[0].lower(), argv[1:], predictor, store)
    except InvalidObservationError as e:
        print(f"  ERROR: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
