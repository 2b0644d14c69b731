"""Shared constants for CanvasLoom.

Values used across the compiler, loader and cache that are not meant to be
tuned per deployment. Tunables live in :mod:`canvasloom.core.config`.
"""

# =============================================================================
# Compiler
# =============================================================================

# Bumped whenever compiled output changes shape; persisted caches written by
# another version are discarded on load.
COMPILER_VERSION = "1.0.0"

# Suffix appended to the compiler version on every artifact
COMPILER_TAG_SUFFIX = "-esm"

# =============================================================================
# Host framework
# =============================================================================

FRAMEWORK_NAME = "react"
FRAMEWORK_DOM_NAME = "react-dom"

# Name the framework's default export is bound to in component code
FRAMEWORK_BINDING = "React"

# Primitives the import normalizer may add to the framework import
FRAMEWORK_PRIMITIVES = (
    "useState",
    "useEffect",
    "useRef",
    "useMemo",
    "useCallback",
    "useContext",
    "useReducer",
    "useLayoutEffect",
    "useImperativeHandle",
    "useDebugValue",
    "useDeferredValue",
    "useTransition",
    "useId",
    "useSyncExternalStore",
    "useInsertionEffect",
)

# Primitives imported when a legacy script is wrapped into a module
LEGACY_WRAPPER_PRIMITIVES = ("useState", "useEffect", "useRef", "useMemo", "useCallback")

# Lowercase tag names the markup heuristics treat as host elements
KNOWN_HOST_TAGS = (
    "div", "span", "button", "input", "form", "h1", "h2", "h3", "h4", "h5", "h6",
    "p", "a", "ul", "li", "table", "tbody", "tr", "td", "th", "select",
    "textarea", "option",
)

# =============================================================================
# Module resolution
# =============================================================================

DEFAULT_MIRROR_HOST = "esm.sh"
DEFAULT_SHIM_BASE_URL = "http://localhost:5173"

# =============================================================================
# Sources
# =============================================================================

TRUSTED_DOMAINS = (
    # ESM CDNs
    "esm.sh",
    "cdn.skypack.dev",
    "unpkg.com",
    "jsdelivr.net",
    "cdnjs.cloudflare.com",
    # GitHub
    "raw.githubusercontent.com",
    "gist.githubusercontent.com",
    # Development
    "localhost",
    "127.0.0.1",
)

SUPPORTED_SOURCE_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".esm.js")

# =============================================================================
# Cache
# =============================================================================

CACHE_STORAGE_KEY = "componentPipelineCache"

# Weight of one cache hit relative to one millisecond of recency
CACHE_HIT_WEIGHT = 1_000_000
