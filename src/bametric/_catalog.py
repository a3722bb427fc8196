# Copyright (c) 2021 Leiden University Medical Center
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Dict, Iterator, Tuple, Union

import xopen  # type: ignore

from ._abstracts import Filter
from ._serialization import dumps, loads
from .errors import CatalogIOError, NotFoundError, ValidationError

log = logging.getLogger("bametric")


class Catalog:
    """
    A mapping of filter names to filters.

    Pushing a filter under an existing name replaces it. Filters are
    returned as copies, so changing a returned filter never changes the
    catalog.
    """

    def __init__(self):
        self._filters: Dict[str, Filter] = {}

    def count(self) -> int:
        return len(self._filters)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, name) -> bool:
        return name in self._filters

    def push(self, name: str, filter: Filter):
        if not isinstance(name, str) or not name:
            raise ValidationError(
                f"Filter name must be a non-empty string, got {name!r}.")
        if not isinstance(filter, Filter):
            raise ValidationError(f"Can not store {filter!r} as a filter.")
        self._filters[name] = filter

    def get(self, name: str) -> Filter:
        try:
            return self._filters[name].model_copy(deep=True)
        except KeyError:
            raise NotFoundError(f"No filter named {name!r} in the catalog.")

    def iterate(self) -> Iterator[Tuple[str, Filter]]:
        for name, filter in list(self._filters.items()):
            yield name, filter.model_copy(deep=True)

    def __iter__(self) -> Iterator[Tuple[str, Filter]]:
        return self.iterate()

    def unique_name(self, prefix: str) -> str:
        """Return the first ``<prefix>_<number>`` not yet in the catalog."""
        number = 1
        while f"{prefix}_{number}" in self._filters:
            number += 1
        return f"{prefix}_{number}"

    def to_json(self) -> str:
        return dumps(dict(self.iterate()))

    @classmethod
    def from_json(cls, text: str) -> "Catalog":
        catalog = cls()
        for name, filter in loads(text).items():
            catalog.push(name, filter)
        return catalog


def load_catalog(filepath: Union[str, os.PathLike]) -> Catalog:
    """Read a catalog snapshot. Compressed files are handled automatically."""
    try:
        with xopen.xopen(filepath, mode="rt", threads=0) as catalog_h:
            text = catalog_h.read()
    except FileNotFoundError as error:
        raise CatalogIOError(
            f"No catalog found at {filepath}. Create one with "
            f"'bametric init'.") from error
    except OSError as error:
        raise CatalogIOError(
            f"Could not read catalog {filepath}: {error}") from error
    catalog = Catalog.from_json(text)
    log.debug(f"Loaded {catalog.count()} filters from {filepath}.")
    return catalog


def _snapshot_mode(path: Path) -> int:
    """Mode of the existing snapshot, or the default mode for new files."""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def save_catalog(catalog: Catalog, filepath: Union[str, os.PathLike]):
    """
    Write the complete catalog to ``filepath``.

    The snapshot is written to a temporary file in the same directory and
    moved over the old snapshot once complete, so a failed save leaves the
    previous snapshot intact. The compression format follows the extension
    of ``filepath``. The snapshot keeps the permissions of the file it
    replaces.
    """
    text = catalog.to_json()
    path = Path(filepath)
    directory = path.parent
    # The suffix keeps the extension xopen uses to pick a compression format.
    try:
        fd, temp_name = tempfile.mkstemp(prefix=".", suffix=f"-{path.name}",
                                         dir=directory)
    except OSError as error:
        raise CatalogIOError(
            f"Could not write catalog {filepath}: {error}") from error
    os.close(fd)
    try:
        with xopen.xopen(temp_name, mode="wt", threads=0) as catalog_h:
            catalog_h.write(text)
        os.chmod(temp_name, _snapshot_mode(path))
        os.replace(temp_name, path)
    except OSError as error:
        os.unlink(temp_name)
        raise CatalogIOError(
            f"Could not write catalog {filepath}: {error}") from error
    except BaseException:
        os.unlink(temp_name)
        raise
    log.debug(f"Saved {catalog.count()} filters to {filepath}.")
