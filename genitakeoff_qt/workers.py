import asyncio
import inspect
import traceback

from PySide6.QtCore import QObject, QRunnable, Signal, Slot


class WorkerSignals(QObject):
    result = Signal(object)
    error = Signal(str)


class Worker(QRunnable):
    """Runs ``fn`` on the thread pool; a returned coroutine is driven to completion there."""

    def __init__(self, fn, *args, **kwargs):
        super().__init__()
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.signals = WorkerSignals()

    @Slot()
    def run(self):
        try:
            result = self.fn(*self.args, **self.kwargs)
            if inspect.iscoroutine(result):
                result = asyncio.run(result)
            self.signals.result.emit(result)
        except Exception:
            self.signals.error.emit(traceback.format_exc())
