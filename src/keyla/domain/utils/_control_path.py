"""
State-based method dispatch (a.k.a. "control-path" templating) via decorators.

This module provides a small mechanism for routing a single method call to
one of several registered implementations based on an attribute of the
receiving object evaluated at call time.

Core idea
---------
- You define a *base* method on a class (its signature becomes the canonical one).
- You then register multiple "control paths" for that method, each keyed by:
    (ClassName, MethodName, StateVal)
- At runtime, the wrapper reads the configured state attribute of `self`
  and dispatches to the implementation registered for that value.

KeyLA uses this to bind numeric kernels to device types: the kernel backend
exposes its device type as state, and CPU implementations register against
`DeviceType.CPU`. A device type with no registered path fails through the
`trap_exception` hook.

Notes
-----
- The first registration for a method replaces the class attribute with a
  dispatching wrapper; the base method's signature and docstring are kept
  via `functools.wraps`.
- Registered implementations are stored in a closure-local mapping owned by
  the builder. Different builders do not share mappings.
- Implementations are called as ordinary instance methods:
  `sub_method(self, *args, **kwargs)`.
"""

from typing import (
    Callable,
    Hashable,
    Optional,
    Union,
    Dict,
    Type,
    Any,
)
from typing_extensions import ParamSpec, TypeVar
from collections import namedtuple
from functools import wraps

P = ParamSpec("P")
R = TypeVar("R")


MethodKey = namedtuple(
    "MethodKey",
    [
        "ClassName",
        "MethodName",
        "StateVal",
    ],
)
"""Tuple-like key used to uniquely identify a control path."""


def create_path_builder(state_attr: str = "_state") -> Callable[
    [
        Type,
        Callable[P, R],
        Hashable,
        Optional[Union[Exception, Callable[[Callable[P, R], Any], None]]],
    ],
    Callable[[Callable[P, R]], Callable[P, R]],
]:
    """
    Create and return a "path builder" used to register stateful control
    paths for methods.

    The returned function (`templator`) is used like this:

        decorator = create_path_builder("device_type")

        class Backend:
            def dot(self, a, b): ...

        @decorator(Backend, Backend.dot, DeviceType.CPU)
        def dot_cpu(self, a, b):
            ...

    When `Backend.dot(...)` is called, it dispatches to `dot_cpu` if
    `self.device_type == DeviceType.CPU`.

    Parameters
    ----------
    state_attr : str, optional
        Name of the attribute read from `self` to select a control path.

    Returns
    -------
    Callable
        A function with signature

            (cls, method, state, trap_exception=None) -> decorator

        where `decorator(sub_method)` registers `sub_method` for that control
        path and installs a dispatcher wrapper on `cls`.
    """

    methods_map: Dict[MethodKey, Callable] = {}

    def templator(
        cls: Type,
        method: Callable[P, R],
        state: Hashable,
        trap_exception: Optional[
            Union[Exception, Callable[[Callable[P, R], Any], None]]
        ] = None,
    ) -> Callable[[Callable[P, R]], Callable[P, R]]:
        """
        Build a decorator that registers a control path implementation.

        Parameters
        ----------
        cls : Type
            The class whose method should be wrapped for state-based dispatch.
        method : Callable[P, R]
            The base method being templated.
        state : Hashable
            The state value that selects the decorated implementation.
        trap_exception : Optional[Union[Exception, Callable]]
            Controls what happens when a dispatch target is missing:

            - If `None`, the wrapper raises `NotImplementedError`.
            - Otherwise it is called as `trap_exception(self, method)` and,
              if that returns an exception instance, the instance is raised.

        Raises
        ------
        TypeError
            If `state` is not hashable.
        """
        try:
            hash(state)
        except TypeError:
            raise TypeError(f"The control-path state must be hashable. Got {state!r}")

        # Resolve the undecorated base method so repeated registrations wrap
        # the original signature, not a previous wrapper.
        base = getattr(method, "__wrapped__", method)
        smk = MethodKey(cls.__name__, base.__name__, state)

        def decorator(sub_method: Callable[P, R]) -> Callable[P, R]:
            methods_map[smk] = sub_method

            @wraps(base)
            def wrapper(self: Any, *args: P.args, **kwargs: P.kwargs) -> Any:
                if not hasattr(self, state_attr):
                    raise NotImplementedError(
                        "{} is missing attribute {}".format(
                            type(self), repr(state_attr)
                        )
                    )
                cur = getattr(self, state_attr)
                if sm := methods_map.get(MethodKey(cls.__name__, base.__name__, cur)):
                    return sm(self, *args, **kwargs)
                if not trap_exception:
                    raise NotImplementedError(
                        "Missing control path (state={}) for {}".format(
                            repr(cur), repr(base)
                        )
                    )
                err = trap_exception(self, base)
                if isinstance(err, BaseException):
                    raise err
                raise NotImplementedError(
                    "Missing control path (state={}) for {}".format(
                        repr(cur), repr(base)
                    )
                )

            setattr(cls, base.__name__, wrapper)
            return sub_method

        return decorator

    return templator
