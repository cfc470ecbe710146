"""
SocketIO Event Handlers - Real-time WebSocket events for the dashboard.
Handles round input, predictions, backtesting, tuning and classifier training.
"""

from flask_socketio import emit
from flask import request
from app import socketio

import sys
sys.path.insert(0, '.')
from config import TUNE_STEP, EnsembleWeights

from app.ml.ensemble import EnsemblePredictor
from app.session.history import InvalidObservationError
from app.session.session_manager import HistoryStore

# Global instances
predictor = EnsemblePredictor()
store = HistoryStore()

print("[Startup] Predictor idle — saved state is restored by run.py")

# Background job flags
current_state = {
    'training': False,
    'tuning': False,
    'stop_tuning': False,
}

# Backtest payloads only carry the most recent per-round predictions
BACKTEST_PREDICTIONS_SHOWN = 50


def _payload(data):
    return data if isinstance(data, dict) else {}


def _trim_backtest(result):
    result = dict(result)
    result['predictions'] = result.get('predictions', [])[-BACKTEST_PREDICTIONS_SHOWN:]
    return result


def _start_training(sid):
    """Fit the classifier off the request thread and persist it."""
    current_state['training'] = True

    def _bg_train():
        try:
            model = predictor.train_classifier(progress=lambda epoch, loss: socketio.sleep(0))
            if model is not None:
                store.save_classifier(model)
            socketio.emit('training_complete', {
                'status': 'trained' if model is not None else 'insufficient_data',
                'samples': model.samples if model is not None else 0,
                'final_loss': model.final_loss if model is not None else None,
                'model_status': predictor.get_model_status(),
            }, to=sid)
        finally:
            current_state['training'] = False

    socketio.start_background_task(_bg_train)


def _should_stop_tuning():
    # Yield to the event loop so stop_tuning can be received
    socketio.sleep(0)
    return current_state['stop_tuning']


@socketio.on('connect')
def handle_connect():
    emit('connected', {
        'status': 'connected',
        'alphabet': list(predictor.config.alphabet),
        'round_width': predictor.config.round_width,
        'rounds': len(predictor.history),
    })


@socketio.on('add_round')
def handle_add_round(data):
    """Score the pending pick, store the round, predict the next one."""
    raw = _payload(data).get('round')
    try:
        result = predictor.observe(raw, auto_train=False)
    except InvalidObservationError as e:
        emit('error', {'message': str(e)})
        return

    if result['status'] == 'added':
        store.append_prediction_log(
            result['round'], result['previous_picks'],
            result['previous_distribution'], result['correct'],
            alphabet=predictor.config.alphabet,
        )
        store.save_history(predictor.history)
        if predictor.needs_retrain() and not current_state['training']:
            _start_training(request.sid)

    emit('round_added', {**result, 'rounds': len(predictor.history)})


@socketio.on('get_prediction')
def handle_get_prediction():
    emit('prediction_result', predictor.predict())


@socketio.on('undo_round')
def handle_undo_round():
    removed = predictor.undo_last()
    if removed is None:
        emit('error', {'message': 'No rounds to undo.'})
        return
    store.save_history(predictor.history)
    emit('round_undone', {
        'removed': list(removed.outcomes),
        'remaining_rounds': len(predictor.history),
        'prediction': predictor.predict(),
    })


@socketio.on('reset_history')
def handle_reset_history():
    predictor.reset()
    removed = store.clear()
    emit('reset_complete', {
        'status': 'reset',
        'files_removed': removed,
        'model_status': predictor.get_model_status(),
    })


@socketio.on('get_history')
def handle_get_history(data=None):
    limit = _payload(data).get('limit')
    try:
        limit = int(limit) if limit else None
    except (TypeError, ValueError):
        emit('error', {'message': f'Invalid history limit: {limit!r}'})
        return
    records = predictor.history.to_records()
    if limit:
        records = records[-limit:]
    emit('history_result', {'total': len(predictor.history), 'rounds': records})


@socketio.on('evaluate')
def handle_evaluate():
    result = predictor.evaluate()
    emit('evaluation_result', _trim_backtest(result))


@socketio.on('tune_weights')
def handle_tune_weights(data=None):
    if current_state['tuning']:
        emit('error', {'message': 'Tuning already running.'})
        return

    step = _payload(data).get('step', TUNE_STEP)
    try:
        step = float(step)
    except (TypeError, ValueError):
        emit('error', {'message': f'Invalid tuning step: {step!r}'})
        return
    sid = request.sid
    current_state['tuning'] = True
    current_state['stop_tuning'] = False

    def _do_tune():
        try:
            result = predictor.tune(step=step, should_stop=_should_stop_tuning)
            if result is None:
                socketio.emit('tuning_complete', {
                    'status': 'insufficient_data',
                    'rounds': len(predictor.history),
                }, to=sid)
                return
            store.save_weights(predictor.weights)
            socketio.emit('tuning_complete', {'status': 'tuned', **result}, to=sid)
        except ValueError as e:
            socketio.emit('error', {'message': f'Tuning failed: {e}'}, to=sid)
        finally:
            current_state['tuning'] = False

    socketio.start_background_task(_do_tune)


@socketio.on('stop_tuning')
def handle_stop_tuning():
    current_state['stop_tuning'] = True
    emit('status_update', {'tuning': current_state['tuning'], 'stop_requested': True})


@socketio.on('train_model')
def handle_train_model():
    if current_state['training']:
        emit('error', {'message': 'Training already running.'})
        return
    _start_training(request.sid)


@socketio.on('save_weights')
def handle_save_weights(data=None):
    weights = _payload(data).get('weights')
    try:
        if weights is not None:
            predictor.set_weights(EnsembleWeights.from_dict(weights))
    except (ValueError, KeyError, TypeError) as e:
        emit('error', {'message': f'Invalid weights: {e}'})
        return
    saved = store.save_weights(predictor.weights)
    emit('weights_update', {'weights': predictor.weights.as_dict(), 'saved': saved})


@socketio.on('load_weights')
def handle_load_weights():
    weights = store.load_weights()
    if weights is not None:
        predictor.set_weights(weights)
    emit('weights_update', {'weights': predictor.weights.as_dict(), 'loaded': weights is not None})


@socketio.on('get_stats')
def handle_get_stats():
    emit('stats_result', {
        'rounds': len(predictor.history),
        'slots': predictor.randomness(),
        'accuracy': predictor.accuracy.summary(),
    })


@socketio.on('get_config')
def handle_get_config():
    emit('config_result', {
        'config': predictor.config.as_dict(),
        'weights': predictor.weights.as_dict(),
    })


@socketio.on('get_status')
def handle_get_status():
    emit('status_update', {
        'training': current_state['training'],
        'tuning': current_state['tuning'],
        'model_status': predictor.get_model_status(),
    })
