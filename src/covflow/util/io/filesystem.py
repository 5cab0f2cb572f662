"""
File system access for coverage collection.

Provides the file accessor used to load source files (``read``/``exists``),
path normalization so every component keys files the same way, and content
hashing for the analysis and rewrite caches.
"""
import os
import os.path
import hashlib
import tokenize

from covflow.errors import CoverageIOError


def normalizePath(path):
    """
    Normalize a path into the key used for coverage data.

    Makes the path absolute, collapses ``..`` segments and applies the
    platform's case folding, so the same file reached through different
    relative paths maps onto one entry.

    Args:
        path: File path (absolute or relative)

    Returns:
        Normalized absolute path
    """
    return os.path.normcase(os.path.abspath(path))


def ensureDirectoryExists(dirname):
    """
    Ensure that a directory exists, creating it if necessary.

    Args:
        dirname: Path to the directory to ensure exists
    """
    if not os.path.exists(dirname):
        os.makedirs(dirname, exist_ok=True)


def dataHash(data):
    """
    Compute the hex SHA-1 digest of text or bytes.

    Args:
        data: str (encoded as UTF-8) or bytes

    Returns:
        Hex digest string
    """
    if isinstance(data, str):
        data = data.encode("utf-8", "surrogatepass")
    h = hashlib.sha1()
    h.update(data)
    return h.hexdigest()


def writeData(path, data):
    """
    Write text to a file, creating the parent directory if necessary.

    Args:
        path: Destination file
        data: Text to write
    """
    ensureDirectoryExists(os.path.dirname(path) or ".")
    with open(path, "w", encoding="utf-8") as f:
        f.write(data)


def sourceFiles(root):
    """
    Yield the Python source files below a directory, sorted per directory.

    Hidden directories, ``__pycache__`` and virtual environments (any
    directory holding a ``pyvenv.cfg``) are not entered.

    Args:
        root: Directory to walk
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames
            if not d.startswith(".") and d != "__pycache__"
            and not os.path.exists(os.path.join(dirpath, d, "pyvenv.cfg"))
        )
        for name in sorted(filenames):
            if name.endswith(".py"):
                yield os.path.join(dirpath, name)


class FileAccessor(object):
    """
    Reads source files for analysis.

    Source is decoded the way the interpreter decodes it (PEP 263 coding
    cookies and BOMs are honoured through ``tokenize.open``). Any failure is
    reported as a CoverageIOError so callers can exclude the file.
    """

    def exists(self, path):
        """Return True if ``path`` names an existing regular file."""
        return os.path.isfile(path)

    def read(self, path):
        """
        Read the text of a source file.

        Args:
            path: File to read

        Returns:
            Decoded file content

        Raises:
            CoverageIOError: If the file is missing, unreadable or cannot
                be decoded.
        """
        try:
            with tokenize.open(path) as f:
                return f.read()
        except (OSError, SyntaxError, UnicodeDecodeError) as e:
            raise CoverageIOError("cannot read %s: %s" % (path, e), path) from e


class MemoryFileAccessor(FileAccessor):
    """File accessor over an in-memory ``{path: content}`` mapping."""

    def __init__(self, files=None):
        self.files = {}
        for path, content in (files or {}).items():
            self.add(path, content)

    def add(self, path, content):
        self.files[normalizePath(path)] = content

    def exists(self, path):
        return normalizePath(path) in self.files

    def read(self, path):
        try:
            return self.files[normalizePath(path)]
        except KeyError:
            raise CoverageIOError("no such file: %s" % path, path) from None
