"""Run Streamlit app from project root. Use: python run_app.py"""
import os
import subprocess
import sys

root = os.path.dirname(os.path.abspath(__file__))
app_path = os.path.join(root, "inbox_signal_ai", "app.py")
env = dict(os.environ, PYTHONPATH=os.pathsep.join(filter(None, [root, os.environ.get("PYTHONPATH")])))
subprocess.run([sys.executable, "-m", "streamlit", "run", app_path], check=True, cwd=root, env=env)
