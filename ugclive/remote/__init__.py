from .invoker import InvokeResult, RemoteWorkerInvoker, backoff_delays

__all__ = ["InvokeResult", "RemoteWorkerInvoker", "backoff_delays"]
