from rq import Worker

from ..integrations.redis_client import redis_conn
from ..integrations.rq_queue import q
from ..logging import configure_logging

if __name__ == "__main__":
    configure_logging()
    worker = Worker([q], connection=redis_conn)
    worker.work()
