import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import jsonify


def get_now():
    """Naive UTC timestamp, matching what the SQL columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def api_response(data=None, status=200):
    """JSON response for API routes."""
    return jsonify(data), status


def error_response(message, status):
    return jsonify({'message': message}), status


class KeyedLock:
    """
    In-process lock registry: callers holding the same key run one at a time,
    different keys proceed concurrently. A key's lock is dropped once no
    caller holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, number of holders and waiters]

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[key]


def read_csv_upload(req):
    """
    CSV content from a request: a multipart `file`, a JSON body with `csv`,
    or a raw text body. Returns bytes or str, or None when nothing was sent.
    """
    upload = req.files.get('file')
    if upload is not None:
        return upload.read()
    if req.is_json:
        return (req.get_json(silent=True) or {}).get('csv')
    return req.get_data() or None
