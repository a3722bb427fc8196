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
"""
Conversion of filters and catalogs to and from tagged JSON.

A filter is written as an object with a ``type`` discriminator followed by
its fields. Combined filters embed both sub-filters as complete objects.
Tag values are written as single key objects such as ``{"Int": 0}``.
A catalog is written as ``{"filters": {name: filter, ...}}``.
"""
from typing import Annotated, Any, Dict

import pydantic
from pydantic import BaseModel, ConfigDict, StringConstraints, TypeAdapter

from ._abstracts import Filter
from ._filters import FilterValue
from .errors import SerializationError

FilterName = Annotated[str, StringConstraints(min_length=1, strict=True)]


class CatalogSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    filters: Dict[FilterName, FilterValue]


_FILTER_ADAPTER = TypeAdapter(FilterValue)


def filter_to_dict(filter: Filter) -> Dict[str, Any]:
    return filter.model_dump(mode="json", by_alias=True)


def filter_from_dict(data) -> Filter:
    try:
        return _FILTER_ADAPTER.validate_python(data)
    except pydantic.ValidationError as error:
        raise SerializationError(f"Invalid filter: {error}") from error
    except RecursionError as error:
        raise SerializationError("Filter is nested too deeply.") from error


def dumps(filters: Dict[str, Filter]) -> str:
    return CatalogSnapshot(filters=filters).model_dump_json(indent=2,
                                                            by_alias=True)


def loads(text: str) -> Dict[str, Filter]:
    try:
        return CatalogSnapshot.model_validate_json(text).filters
    except pydantic.ValidationError as error:
        raise SerializationError(f"Malformed catalog: {error}") from error
    except RecursionError as error:
        raise SerializationError("Catalog is nested too deeply.") from error
