from .consumer import QueueConsumer, run_worker

__all__ = [
    "QueueConsumer",
    "run_worker",
]
