# State directory helpers. Every write goes to a temp file in the same
# directory and is renamed over the target, so readers see old or new, never half.
import json
import os
import tempfile
from pathlib import Path


def write_text(path, text: str) -> None:
    path = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def write_json(path, data) -> None:
    write_text(path, json.dumps(data, indent=4, ensure_ascii=False))


def read_text(path, default=""):
    # A file may vanish between listing and reading; treat that as absent.
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError):
        return default


def read_json_or_empty(path) -> dict:
    content = read_text(path).strip()
    if not content:
        return {}
    try:
        decoded = json.loads(content)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


class CounterStore:
    """A non-negative integer kept as plain text in ``base_dir/name``.

    Used for the payload sequence (``payload.seq``) and the consecutive
    submission failure count (``submit.failures``).
    """

    def __init__(self, base_dir, name: str):
        self.path = Path(base_dir) / name

    def read(self) -> int:
        try:
            value = int(read_text(self.path).strip())
        except ValueError:
            return 0
        return max(value, 0)

    def write(self, value: int) -> None:
        write_text(self.path, str(int(value)))

    def increment(self) -> int:
        value = self.read() + 1
        self.write(value)
        return value

    def reset(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def __repr__(self):
        return f"CounterStore({str(self.path)!r})"
