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
"""Exceptions raised by bametric."""


class BametricError(Exception):
    """Base class for all bametric errors."""


class ValidationError(BametricError, ValueError):
    """A filter or tag was constructed with invalid fields."""


class NotFoundError(BametricError, LookupError):
    """A filter name is not present in the catalog."""


class SerializationError(BametricError, ValueError):
    """A catalog snapshot or filter object could not be decoded."""


class ConversionError(BametricError, ValueError):
    """A user supplied tag literal does not parse as the declared type."""


class CatalogIOError(BametricError, OSError):
    """The catalog snapshot could not be read or written."""


class AlignmentFileError(BametricError, ValueError):
    """Alignment files or their number do not fit the apply command."""
