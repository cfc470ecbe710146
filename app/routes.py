"""
HTTP Routes - JSON endpoints alongside the SocketIO events.
"""

from flask import Blueprint, jsonify

import sys
sys.path.insert(0, '.')

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    return jsonify({'status': 'ok', 'service': 'Red/Black/Green Ensemble Predictor'})


@main_bp.route('/api/status')
def status():
    from app.socketio_handlers import predictor
    return jsonify(predictor.get_model_status())


@main_bp.route('/api/predict')
def predict():
    from app.socketio_handlers import predictor
    return jsonify(predictor.predict())
