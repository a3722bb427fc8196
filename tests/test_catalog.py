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
import gzip
import json
import os
import stat

import pytest

import xopen  # type: ignore

from bametric import (
    BoolOperator,
    Catalog,
    CatalogIOError,
    CombinedFilter,
    LengthFilter,
    MapqFilter,
    NotFoundError,
    SerializationError,
    ValidationError,
    load_catalog,
    save_catalog,
)


def length(name="f", min_len=18, max_len=24):
    return LengthFilter(name=name, min_len=min_len, max_len=max_len)


def mapq(name="m", min_mapq=4, max_mapq=20):
    return MapqFilter(name=name, min_mapq=min_mapq, max_mapq=max_mapq)


def reprs(catalog):
    return {name: repr(filter) for name, filter in catalog.iterate()}


def test_catalog_new():
    catalog = Catalog()
    assert catalog.count() == 0
    assert len(catalog) == 0
    assert list(catalog.iterate()) == []


def test_catalog_push_get():
    catalog = Catalog()
    filter = length()
    catalog.push("f", filter)
    assert catalog.count() == 1
    assert "f" in catalog
    assert catalog.get("f") == filter
    assert repr(catalog.get("f")) == repr(filter)


def test_catalog_get_returns_copy():
    catalog = Catalog()
    combined = CombinedFilter(name="c", filter1=length("l", 1, 2),
                              filter2=mapq("m", 3, 4),
                              operator=BoolOperator.OR)
    catalog.push("c", combined)
    copy = catalog.get("c")
    assert copy == combined
    assert copy is not combined
    assert copy.filter1 is not combined.filter1


def test_catalog_push_overwrites():
    catalog = Catalog()
    catalog.push("f", length())
    catalog.push("f", mapq("f"))
    assert catalog.count() == 1
    assert catalog.get("f") == mapq("f")


def test_catalog_get_missing():
    with pytest.raises(NotFoundError) as error:
        Catalog().get("missing")
    error.match("No filter named 'missing'")


@pytest.mark.parametrize(["name", "filter"], (
    ("", length()),
    (None, length()),
    ("f", "length 1 2"),
    ("f", {"type": "Length", "name": "f", "min_len": 1, "max_len": 2}),
))
def test_catalog_push_invalid(name, filter):
    with pytest.raises(ValidationError):
        Catalog().push(name, filter)


def test_catalog_iterate_is_restartable():
    catalog = Catalog()
    catalog.push("a", length("a", 1, 2))
    catalog.push("b", mapq("b", 1, 2))
    first = dict(catalog.iterate())
    second = dict(catalog)
    assert first == second == {"a": length("a", 1, 2),
                               "b": mapq("b", 1, 2)}


def test_catalog_unique_name():
    catalog = Catalog()
    assert catalog.unique_name("length") == "length_1"
    catalog.push("length_1", length("length_1", 1, 2))
    catalog.push("length_2", length("length_2", 1, 2))
    assert catalog.unique_name("length") == "length_3"
    assert catalog.unique_name("mapq") == "mapq_1"


@pytest.mark.parametrize("filename", ["bametric.json", "bametric.json.gz"])
def test_save_load_catalog(tmp_path, filename):
    path = tmp_path / filename
    catalog = Catalog()
    catalog.push("f", length())
    save_catalog(catalog, path)
    loaded = load_catalog(path)
    assert reprs(loaded) == reprs(catalog)
    assert list(tmp_path.iterdir()) == [path]


def test_save_catalog_compressed(tmp_path):
    path = tmp_path / "bametric.json.gz"
    save_catalog(Catalog(), path)
    with gzip.open(path, "rt") as catalog_h:
        assert json.load(catalog_h) == {"filters": {}}


@pytest.mark.parametrize("mode", [0o644, 0o600, 0o664])
def test_save_catalog_keeps_permissions(tmp_path, mode):
    path = tmp_path / "bametric.json"
    save_catalog(Catalog(), path)
    path.chmod(mode)
    catalog = Catalog()
    catalog.push("f", length())
    save_catalog(catalog, path)
    assert stat.S_IMODE(path.stat().st_mode) == mode
    assert "f" in load_catalog(path)


def test_save_catalog_new_file_permissions(tmp_path):
    path = tmp_path / "bametric.json"
    umask = os.umask(0o022)
    try:
        save_catalog(Catalog(), path)
    finally:
        os.umask(umask)
    assert stat.S_IMODE(path.stat().st_mode) == 0o644


def test_load_catalog_missing(tmp_path):
    with pytest.raises(CatalogIOError) as error:
        load_catalog(tmp_path / "missing.json")
    error.match("bametric init")


def test_load_catalog_malformed(tmp_path):
    path = tmp_path / "bametric.json"
    path.write_text('{"filters": {"f": {"type": "Length"}}}')
    with pytest.raises(SerializationError):
        load_catalog(path)


def test_failed_save_keeps_previous_snapshot(tmp_path, monkeypatch):
    path = tmp_path / "bametric.json"
    catalog = Catalog()
    catalog.push("f", length())
    save_catalog(catalog, path)
    previous = path.read_bytes()

    real_xopen = xopen.xopen

    class FailingWriter:
        def __init__(self, handle):
            self.handle = handle

        def __enter__(self):
            return self

        def __exit__(self, *args):
            self.handle.close()

        def write(self, text):
            self.handle.write(text[:10])
            raise OSError("No space left on device")

    def failing_xopen(filename, mode="r", **kwargs):
        return FailingWriter(real_xopen(filename, mode, **kwargs))

    monkeypatch.setattr(xopen, "xopen", failing_xopen)
    catalog.push("g", mapq("g", 1, 2))
    with pytest.raises(CatalogIOError) as error:
        save_catalog(catalog, path)
    error.match("No space left on device")
    assert path.read_bytes() == previous
    assert list(tmp_path.iterdir()) == [path]
