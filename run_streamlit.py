#!/usr/bin/env python3
"""
Launcher script for the Streamlit Weight Goal Tracker
"""

import os
import subprocess
import sys


def build_command(app_path: str, port: int = 8501) -> list:
    return [
        sys.executable, "-m", "streamlit", "run", app_path,
        "--server.port", str(port),
        "--server.address", "localhost",
    ]


def main():
    """Launch the Streamlit Weight Goal Tracker application"""
    script_dir = os.path.dirname(os.path.abspath(__file__))
    app_path = os.path.join(script_dir, "streamlit_app.py")

    if not os.path.exists(app_path):
        print(f"Error: streamlit_app.py not found at {app_path}")
        sys.exit(1)

    try:
        import streamlit  # noqa: F401
    except ImportError:
        print("Error: Streamlit is not installed. Please run:")
        print("pip install -e .")
        sys.exit(1)

    port = int(os.environ.get("PORT", "8501"))
    print("Starting Weight Goal Tracker...")
    print("The app will open in your default web browser.")
    print("Press Ctrl+C to stop the application.")

    try:
        subprocess.run(build_command(app_path, port), cwd=script_dir)
    except KeyboardInterrupt:
        print("\nWeight Goal Tracker stopped.")
    except Exception as e:
        print(f"Error launching application: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
