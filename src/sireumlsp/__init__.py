"""sireumlsp – editor feedback for Sireum Logika verification runs.

The core pipeline is usable without the language server::

    store = AnnotationStore(host, Settings())
    run = RunLifecycle(store)
    directory = run.start()      # hand this to the verifier
    ...
    run.end(exit_code)
"""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version('sireumlsp')
except PackageNotFoundError:
    __version__ = '0.0.0.dev0'

from sireumlsp.annotations import AnnotationHost, AnnotationStore, ProtocolViolation
from sireumlsp.config import Settings, SettingsResolver
from sireumlsp.events import DecodeError, decode
from sireumlsp.lifecycle import RunLifecycle

__all__ = [
    'AnnotationHost',
    'AnnotationStore',
    'DecodeError',
    'ProtocolViolation',
    'RunLifecycle',
    'Settings',
    'SettingsResolver',
    'decode',
]
