#!/usr/bin/env python3
"""
Red/Black/Green Ensemble Prediction System - Entry Point
Start the Flask + SocketIO server.
"""

import os
import sys

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import HOST, PORT, DEBUG, DATA_DIR

# Create data directory
os.makedirs(DATA_DIR, exist_ok=True)

from app import create_app, socketio

app = create_app()

if __name__ == '__main__':
    from app.socketio_handlers import predictor, store
    predictor.load_state(store)

    print("=" * 60)
    print("  Red/Black/Green Ensemble Prediction System v1.0")
    print("=" * 60)
    print(f"  Server:    http://localhost:{PORT}")
    print(f"  Data dir:  {DATA_DIR}")
    print(f"  Rounds:    {len(predictor.history)}")
    print(f"  Debug:     {DEBUG}")
    print("=" * 60)
    print()

    socketio.run(app, host=HOST, port=PORT, debug=DEBUG, use_reloader=False)
