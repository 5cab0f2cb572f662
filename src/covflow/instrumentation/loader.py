"""
Import hook and script runner for instrumented files.

The finder claims only plain source modules that the file filter tracks
with the "instrument" strategy. Everything else is left to the regular
import machinery and, if wanted, to the runtime tracker.
"""

import builtins
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import os
import sys
import types

from covflow.instrumentation.transformer import PROBE_NAME

LOG = logging.getLogger(__name__)


class InstrumentingLoader(importlib.machinery.SourceFileLoader):
    """Source loader that executes the rewritten text of a module."""

    def __init__(self, fullname, path, context):
        super().__init__(fullname, path)
        self.context = context

    def exec_module(self, module):
        content = importlib.util.decode_source(self.get_data(self.path))
        code, probe = self.context.prepare(self.path, content)
        if code is None:
            super().exec_module(module)
            return
        if probe is not None:
            module.__dict__[PROBE_NAME] = probe
        exec(code, module.__dict__)
        if probe is not None:
            probe.finish()


class InstrumentingFinder(importlib.abc.MetaPathFinder):
    """Meta path finder installing InstrumentingLoader for tracked files."""

    def __init__(self, context):
        self.context = context

    def find_spec(self, fullname, path=None, target=None):
        spec = importlib.machinery.PathFinder.find_spec(fullname, path)
        if spec is None or not isinstance(spec.loader, importlib.machinery.SourceFileLoader):
            return None
        filename = self.context.filter.wanted(spec.origin)
        if filename is None or self.context.filter.strategy(filename) != "instrument":
            return None
        LOG.debug("instrumenting import of %s from %s", fullname, spec.origin)
        spec.loader = InstrumentingLoader(fullname, spec.origin, self.context)
        return spec

    def install(self):
        if self not in sys.meta_path:
            sys.meta_path.insert(0, self)

    def uninstall(self):
        if self in sys.meta_path:
            sys.meta_path.remove(self)


def run_path(context, path, argv=None, run_name="__main__"):
    """Run a script the way ``python path`` would, under coverage.

    Args:
        context: CoverageContext tracking the run.
        path: Script to execute.
        argv: Arguments after the script name.
        run_name: ``__name__`` of the executed module.

    Returns:
        The globals of the executed module. A script that does not parse
        is not executed; its failure is listed in the run summary.

    Raises:
        CoverageIOError: If the script cannot be read.
    """
    path = os.path.abspath(path)
    content = context.store.accessor.read(path)
    code, probe = context.prepare(path, content)

    module = types.ModuleType(run_name)
    module.__file__ = path
    module.__builtins__ = builtins
    if code is None:
        LOG.info("not running %s, it does not parse", path)
        return module.__dict__
    if probe is not None:
        module.__dict__[PROBE_NAME] = probe

    saved_argv = sys.argv
    saved_path = sys.path[0] if sys.path else None
    saved_module = sys.modules.get(run_name)
    sys.argv = [path] + list(argv or ())
    if sys.path:
        sys.path[0] = os.path.dirname(path)
    else:
        sys.path.append(os.path.dirname(path))
    sys.modules[run_name] = module
    try:
        exec(code, module.__dict__)
        if probe is not None:
            probe.finish()
    finally:
        sys.argv = saved_argv
        if saved_path is not None:
            sys.path[0] = saved_path
        if saved_module is not None:
            sys.modules[run_name] = saved_module
        else:
            sys.modules.pop(run_name, None)
    return module.__dict__
