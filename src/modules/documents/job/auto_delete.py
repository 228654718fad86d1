from datetime import timedelta
from apscheduler.schedulers.background import BackgroundScheduler
from modules.documents.services.cleanup import purge_stale_temporary_documents
from modules.documents.services.deletion import DeletionOrchestrator


def start_cleanup_job(session_factory, orchestrator: DeletionOrchestrator,
                      max_age: timedelta) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()

    def job():
        with session_factory() as session:
            purge_stale_temporary_documents(session, orchestrator, max_age)

    scheduler.add_job(job, 'interval', days=1)  # cada 24 horas
    scheduler.start()
    return scheduler
