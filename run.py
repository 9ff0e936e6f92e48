#!/usr/bin/env python3
"""
Main entry point for running the FrameRate Flask application.
"""

from framerate.app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
