"""Worker 모듈"""

from satellite_tasks.tasks.workers.analysis_worker import AnalysisWorker

__all__ = ["AnalysisWorker"]
