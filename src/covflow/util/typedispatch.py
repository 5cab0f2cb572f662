"""Type-based dispatch for tagged tree nodes.

Handlers are selected from the runtime class of their first argument, so a
walker over ``covflow.frontend.nodes`` declares one method per node class
instead of comparing kind strings.
"""

__all__ = [
    "TypeDispatcher",
    "defaultdispatch",
    "dispatch",
    "TypeDispatchError",
    "TypeDispatchDeclarationError",
]

import inspect


class TypeDispatchError(Exception):
    """Raised when a dispatcher is called with a type it cannot handle."""


class TypeDispatchDeclarationError(Exception):
    """Raised when a dispatcher class declares its handlers incorrectly."""


def flattenTypesInto(l, result):
    for child in l:
        if isinstance(child, (list, tuple)):
            flattenTypesInto(child, result)
        else:
            if not isinstance(child, type):
                raise TypeDispatchDeclarationError(
                    "Expected a type, got %r instead." % child
                )
            result.append(child)


def dispatch(*types):
    """Mark a method as the handler for the given node classes.

    Args:
        *types: Classes (or nested lists of classes) handled by the method.
    """

    def dispatchF(f):
        f.__dispatch__ = []
        flattenTypesInto(types, f.__dispatch__)
        return f

    return dispatchF


def defaultdispatch(f):
    """Mark a method as the fallback handler."""
    f.__dispatch__ = (None,)
    return f


def dispatch__call__(self, p, *args):
    """Call the handler registered for ``type(p)``.

    Falls back along the MRO of ``type(p)`` and then to the default handler;
    the resolved handler is cached per concrete class.
    """
    t = type(p)
    table = self.__typeDispatchTable__

    func = table.get(t)
    if func is None:
        for supercls in t.mro():
            func = table.get(supercls)
            if func is not None:
                break
        if func is None:
            func = table.get(None)
        table[t] = func

    return func(self, p, *args)


def exceptionDefault(self, node, *args):
    raise TypeDispatchError("%r cannot handle %r\n%r" % (type(self), type(node), node))


class typedispatcher(type):
    """Metaclass building ``__typeDispatchTable__`` from decorated methods.

    Handlers declared on base classes are inherited unless the subclass
    declares its own handler for the same type. A class without any default
    handler is rejected at definition time.
    """

    def __new__(self, name, bases, d):
        lut = {}

        for k, v in d.items():
            types = getattr(v, "__dispatch__", None)
            if types is None:
                continue
            for t in types:
                if t in lut:
                    raise TypeDispatchDeclarationError(
                        "%s has declared with multiple handlers for type %s"
                        % (name, "default" if t is None else t.__name__)
                    )
                lut[t] = v

        for base in bases:
            for t in inspect.getmro(base):
                for k, v in getattr(t, "__typeDispatchTable__", {}).items():
                    if k not in lut:
                        lut[k] = v

        if None not in lut:
            raise TypeDispatchDeclarationError("%s has no default dispatch" % (name,))

        d["__typeDispatchTable__"] = lut
        return type.__new__(self, name, bases, d)


class TypeDispatcher(object, metaclass=typedispatcher):
    """Base class for dispatchers over node classes.

    Example:
        >>> class Namer(TypeDispatcher):
        ...     @dispatch(int)
        ...     def visit_int(self, obj):
        ...         return "integer"
        ...     @defaultdispatch
        ...     def visit_other(self, obj):
        ...         return "other"
        >>> Namer()(42), Namer()("x")
        ('integer', 'other')
    """

    __call__ = dispatch__call__
    exceptionDefault = defaultdispatch(exceptionDefault)
