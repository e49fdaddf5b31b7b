"""
Core functionality per scan-processor.

Questo modulo contiene:
- Configurazione (config.py)
- Database e record store (database.py, repository.py)
- Lifecycle di stato ed eventi (status.py, events.py)
- Job management e task runner (job_manager.py, tasks.py)
- Logging (logger.py)
"""
