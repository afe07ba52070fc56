"""Convenience entry point for running a Celery worker with beat.

Deployments normally use the Celery CLI
(``celery -A infrastructure.tasks worker -B -Q payments,default``); this
script does the same for local runs.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=["worker", "--beat", "--loglevel=INFO", "--queues=payments,default", "--hostname=worker@%h"]
    )


if __name__ == "__main__":
    main()
