"""Legacy script → module wrapper.

Older generated components are bare scripts that define ``const Component``
and rely on globals. Wrapping them with the framework import and a default
export makes them loadable like any other module.
"""

import logging
import re

from ..constants import FRAMEWORK_BINDING, FRAMEWORK_NAME, LEGACY_WRAPPER_PRIMITIVES
from ..errors import UnsupportedFormatError
from .format_classifier import is_module

logger = logging.getLogger(__name__)

_COMPONENT_DEFINITION_RE = re.compile(r"const\s+Component\s*=\s*\S")


def convert_to_module(code: str) -> str:
    """Wrap a legacy script into a module with a default export.

    Raises:
        UnsupportedFormatError: If the script does not define ``const Component``
    """
    if is_module(code):
        return code

    if not _COMPONENT_DEFINITION_RE.search(code):
        raise UnsupportedFormatError("Could not find Component definition in legacy code")

    header = f"import {FRAMEWORK_BINDING}, {{ {', '.join(LEGACY_WRAPPER_PRIMITIVES)} }} from '{FRAMEWORK_NAME}';"
    logger.debug("Wrapped legacy script as a module")
    return f"{header}\n\n{code}\n\nexport default Component;"
