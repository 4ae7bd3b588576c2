# __main__.py
import uvicorn

from ovenbook.config import HOST, LOG_LEVEL, PORT


def main():
    """Serve the API with uvicorn: `python -m ovenbook` or the `ovenbook` script."""
    uvicorn.run("ovenbook.main:app", host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
