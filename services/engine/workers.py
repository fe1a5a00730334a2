"""
Integrated workers run in-process and complete synchronously.

A Worker node whose config names a registered ``worker_type`` is executed here
instead of being dispatched over HTTP. Functions take ``(config, input)`` and
return the node output; coroutine functions are awaited.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from jinja2 import StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

WorkerFn = Callable[[Dict[str, Any], Any], Union[Any, Awaitable[Any]]]

_template_env = SandboxedEnvironment(undefined=StrictUndefined)


def echo_worker(config: Dict[str, Any], input: Any) -> Any:
    """Return the input unchanged."""
    return input


def template_worker(config: Dict[str, Any], input: Any) -> Dict[str, Any]:
    """Render each string of ``config['template']`` with the input in scope as ``input``."""
    template = config.get("template") or {}
    result = {}
    for key, value in template.items():
        if isinstance(value, str) and "{{" in value and "}}" in value:
            result[key] = _template_env.from_string(value).render(input=input)
        else:
            result[key] = value
    return result


class IntegratedWorkerRegistry:
    """Maps ``worker_type`` names to in-process worker functions."""

    def __init__(self):
        self._workers: Dict[str, WorkerFn] = {}

    def register(self, worker_type: str, fn: WorkerFn):
        self._workers[worker_type] = fn

    def get(self, worker_type: Optional[str]) -> Optional[WorkerFn]:
        if not worker_type:
            return None
        return self._workers.get(worker_type)

    def __contains__(self, worker_type: str) -> bool:
        return worker_type in self._workers

    async def run(self, worker_type: str, config: Dict[str, Any], input: Any) -> Any:
        fn = self._workers[worker_type]
        result = fn(config, input)
        if inspect.isawaitable(result):
            result = await result
        return result


def default_registry() -> IntegratedWorkerRegistry:
    registry = IntegratedWorkerRegistry()
    registry.register("echo", echo_worker)
    registry.register("template", template_worker)
    return registry
