"""Node.js subprocess loader.

Each handle is a ``<digest>.mjs`` file in a private temp directory. Loading
runs a small Node harness that:

- installs resolve/load hooks, so ``https://`` imports are fetched over the
  network and the framework shim URLs are served from one in-process stub
- imports the module
- prints one JSON line describing its exports

A hard subprocess timeout kills runaway modules. Callers apply their own
(soft) timeout on top.
"""

import asyncio
import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from ..config import PipelineSettings, get_settings
from ..errors import ExecutionValidationError, LoadTimeoutError
from ..models import ModuleHandle, ModuleNamespace
from .base import EphemeralModuleLoader

logger = logging.getLogger(__name__)

# argv: <module url> <shim base url>
_HARNESS = r"""
import { register } from 'node:module';

const [target, shimBase] = process.argv.slice(-2);
const shimPrefix = shimBase.replace(/\/$/, '') + '/shims/';

const hooks = `
const SHIM_PREFIX = ${JSON.stringify(shimPrefix)};
const HOOKS = ['useState','useEffect','useRef','useMemo','useCallback','useContext','useReducer',
  'useLayoutEffect','useImperativeHandle','useDebugValue','useDeferredValue','useTransition','useId',
  'useSyncExternalStore','useInsertionEffect'];
const API = ['createElement','Fragment','Component','PureComponent','memo','forwardRef','createContext',
  'createRef','lazy','Suspense','StrictMode','Children','cloneElement','isValidElement','startTransition'];
function shimSource(url) {
  const name = url.slice(SHIM_PREFIX.length);
  if (name.startsWith('react-dom')) {
    return 'const D = globalThis.ReactDOM; export default D; export const { createRoot, hydrateRoot, render, createPortal, flushSync } = D;';
  }
  if (name.startsWith('react-jsx-runtime')) {
    return 'const R = globalThis.React; export const Fragment = R.Fragment;'
      + ' export const jsx = (t, p, k) => R.createElement(t, p); export const jsxs = jsx; export const jsxDEV = jsx;';
  }
  return 'const R = globalThis.React; export default R; export const { '
    + HOOKS.concat(API).join(', ') + ' } = R;';
}
export async function resolve(specifier, context, next) {
  if (/^https?:/.test(specifier)) {
    return { url: specifier, shortCircuit: true };
  }
  const remoteParent = context.parentURL && /^https?:/.test(context.parentURL);
  if (remoteParent && (specifier.startsWith('/') || specifier.startsWith('./') || specifier.startsWith('../'))) {
    return { url: new URL(specifier, context.parentURL).href, shortCircuit: true };
  }
  if (remoteParent && specifier.startsWith('react-dom')) {
    return { url: SHIM_PREFIX + 'react-dom.js', shortCircuit: true };
  }
  if (remoteParent && specifier === 'react/jsx-runtime') {
    return { url: SHIM_PREFIX + 'react-jsx-runtime.js', shortCircuit: true };
  }
  if (remoteParent && specifier === 'react') {
    return { url: SHIM_PREFIX + 'react.js', shortCircuit: true };
  }
  return next(specifier, context);
}
export async function load(url, context, next) {
  if (url.startsWith(SHIM_PREFIX)) {
    return { format: 'module', source: shimSource(url), shortCircuit: true };
  }
  if (/^https?:/.test(url)) {
    const res = await fetch(url);
    if (!res.ok) throw new Error('Failed to fetch ' + url + ': ' + res.status);
    return { format: 'module', source: await res.text(), shortCircuit: true };
  }
  return next(url, context);
}
`;

register('data:text/javascript,' + encodeURIComponent(hooks));

globalThis.window = globalThis;
const noop = () => {};
const identity = (v) => v;
const createContext = (value) => {
  const ctx = { _currentValue: value };
  ctx.Provider = (props) => props.children;
  ctx.Consumer = (props) => props.children(ctx._currentValue);
  return ctx;
};
globalThis.React = {
  createElement: (type, props, ...children) => ({ type, props: { ...(props || {}), children } }),
  cloneElement: (el, props) => ({ ...el, props: { ...el.props, ...(props || {}) } }),
  isValidElement: (v) => !!v && typeof v === 'object' && 'type' in v,
  Fragment: Symbol.for('react.fragment'),
  StrictMode: Symbol.for('react.strict_mode'),
  Suspense: Symbol.for('react.suspense'),
  Component: class Component { constructor(props) { this.props = props; } },
  PureComponent: class PureComponent { constructor(props) { this.props = props; } },
  Children: { map: (c, f) => [].concat(c || []).map(f), toArray: (c) => [].concat(c || []) },
  memo: identity, forwardRef: identity, lazy: identity, createContext,
  createRef: () => ({ current: null }), startTransition: (f) => f(),
  useState: (v) => [typeof v === 'function' ? v() : v, noop],
  useReducer: (r, a, init) => [init ? init(a) : a, noop],
  useRef: (v) => ({ current: v }),
  useMemo: (f) => f(), useCallback: identity,
  useEffect: noop, useLayoutEffect: noop, useInsertionEffect: noop,
  useImperativeHandle: noop, useDebugValue: noop,
  useContext: (c) => (c ? c._currentValue : undefined),
  useDeferredValue: identity, useTransition: () => [false, (f) => f()],
  useId: () => ':r0:', useSyncExternalStore: (s, get) => get(),
};
globalThis.ReactDOM = {
  createRoot: () => ({ render: noop, unmount: noop }),
  hydrateRoot: () => ({ render: noop, unmount: noop }),
  render: noop, createPortal: identity, flushSync: (f) => f(),
};

let out;
try {
  const ns = await import(target);
  const exports = {};
  for (const name of Object.keys(ns)) {
    const value = ns[name];
    const props = {};
    if (value && typeof value === 'object') {
      for (const key of Object.keys(value)) props[key] = typeof value[key];
    }
    exports[name] = { type: typeof value, props };
  }
  out = { ok: true, exports };
} catch (err) {
  out = { ok: false, error: String((err && err.message) || err) };
}
process.stdout.write(JSON.stringify(out) + '\n', () => process.exit(0));
"""


class NodeModuleLoader(EphemeralModuleLoader):
    """Materializes modules as temp files and imports them with Node."""

    def __init__(self, settings: Optional[PipelineSettings] = None, workdir: Optional[str] = None):
        super().__init__()
        settings = settings or get_settings()
        self.node_binary = settings.node_binary
        self.shim_base_url = settings.shim_base_url
        self.hard_timeout_s = settings.loader_hard_timeout_s

        self._owns_workdir = workdir is None
        self.workdir = Path(workdir or tempfile.mkdtemp(prefix="canvasloom-modules-"))
        self.workdir.mkdir(parents=True, exist_ok=True)
        self._prefix = self.workdir.as_uri() + "/"

    def is_available(self) -> bool:
        """Check that the Node runtime can be found."""
        return shutil.which(self.node_binary) is not None

    def is_ephemeral(self, url: str) -> bool:
        return url.startswith("file://")

    def _url_for(self, digest: str) -> str:
        return self._prefix + f"{digest}.mjs"

    def _path_for(self, url: str) -> Path:
        return self.workdir / url[len(self._prefix):]

    def _create(self, url: str, code: str) -> None:
        self._path_for(url).write_text(code, encoding="utf-8")

    def _destroy(self, url: str) -> None:
        try:
            self._path_for(url).unlink()
        except FileNotFoundError:
            logger.debug(f"Module file already gone: {url}")

    def _command(self, handle: ModuleHandle) -> List[str]:
        return [
            self.node_binary,
            "--input-type=module",
            "--no-warnings",
            "-e", _HARNESS,
            handle.url,
            self.shim_base_url,
        ]

    async def _import(self, handle: ModuleHandle) -> ModuleNamespace:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command(handle),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.workdir),
            )
        except FileNotFoundError:
            raise ExecutionValidationError(f"Node runtime not found: {self.node_binary}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.hard_timeout_s)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"Killed module load after {self.hard_timeout_s}s: {handle.url}")
            raise LoadTimeoutError(f"Module import exceeded hard limit of {self.hard_timeout_s}s")

        return self._parse_output(stdout.decode("utf-8", errors="replace"),
                                  stderr.decode("utf-8", errors="replace"),
                                  proc.returncode)

    @staticmethod
    def _parse_output(stdout: str, stderr: str, returncode: Optional[int]) -> ModuleNamespace:
        lines = [line for line in stdout.splitlines() if line.strip()]
        if not lines:
            detail = stderr.strip()[:500] or f"exit code {returncode}"
            raise ExecutionValidationError(f"Module loader produced no output: {detail}")

        try:
            payload = json.loads(lines[-1])
        except json.JSONDecodeError as e:
            raise ExecutionValidationError(f"Module loader produced invalid output: {e}")

        if not payload.get("ok"):
            raise ExecutionValidationError(payload.get("error") or "Module import failed")

        return ModuleNamespace.from_descriptor(payload.get("exports") or {})

    def close(self) -> None:
        super().close()
        if self._owns_workdir:
            shutil.rmtree(self.workdir, ignore_errors=True)
