# Gunicorn configuration file
#
# 每个 worker 进程持有独立的凭证池（挂起/恢复状态不跨进程共享）。

import gc
import os

bind = os.getenv("BIND", "0.0.0.0:8000")
workers = int(os.getenv("WEB_CONCURRENCY", "2"))
worker_class = "uvicorn.workers.UvicornWorker"
# 流式响应可能持续较长时间
timeout = int(os.getenv("GUNICORN_TIMEOUT", "120"))
keepalive = 5


def when_ready(server):
    """
    Called just after the server is started.
    Freeze GC before forking workers to optimize Copy-on-Write memory sharing.
    """
    gc.freeze()
    server.log.info("GC frozen for Copy-on-Write optimization")
    server.log.info(f"Objects in permanent generation: {gc.get_freeze_count()}")


def post_fork(server, worker):
    try:
        import resource
        rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        server.log.info(f"Worker {worker.pid} RSS after fork: {rss} KB")
    except ImportError:
        pass # Windows 不支持 resource 模块
