from typing import Any, Callable, Generic, Type, TypeVar, cast

RT = TypeVar("RT")


class cached_property(Generic[RT]):
    """Property computed once per instance and stored in the instance dict.

    Resources use it for their lazily built API clients so that every
    client shares the process wide ``ApiClient``:

    .. sourcecode:: python

        @cached_property
        def core_v1_api(self) -> CoreV1Api:
            return CoreV1Api(self.api_client)

    Assigning to the attribute replaces the cached value, which is how
    tests inject mocked API objects. Deleting it forces recomputation.
    """

    def __init__(self, fget: Callable[[Any], RT]) -> None:
        self.fget = fget
        self.attr = fget.__name__
        self.__doc__ = fget.__doc__

    def __get__(self, obj: Any, owner: Type = None) -> RT:
        if obj is None:
            return cast(RT, self)
        if self.attr not in obj.__dict__:
            obj.__dict__[self.attr] = self.fget(obj)
        return cast(RT, obj.__dict__[self.attr])

    def __set__(self, obj: Any, value: RT) -> None:
        obj.__dict__[self.attr] = value

    def __delete__(self, obj: Any) -> None:
        obj.__dict__.pop(self.attr, None)
