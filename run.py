from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

"""Application entry point.

Builds the Flask app (tables are created by the factory) and, when executed
directly, hands the process over to Gunicorn.
"""

from recshelf import create_app

app = create_app()

if __name__ == '__main__':
    import os
    import sys

    # One worker: the job tracker lives in process memory
    command = [
        "gunicorn",
        "-w", "1",
        "--threads", os.environ.get('GUNICORN_THREADS', '4'),
        "-b", os.environ.get('BIND', '0.0.0.0:5054'),
        "run:app"
    ]

    print(f"Launching Gunicorn with command: {' '.join(command)}")
    try:
        os.execvp(command[0], command)
    except FileNotFoundError:
        print("Error: 'gunicorn' command not found.", file=sys.stderr)
        print("Please install Gunicorn: pip install gunicorn", file=sys.stderr)
        sys.exit(1)
