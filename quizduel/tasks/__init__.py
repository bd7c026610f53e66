"""Background tasks for challenge evaluation and maintenance."""
from quizduel.tasks.challenge_maintenance import run_challenge_maintenance, schedule_periodic_maintenance
from quizduel.tasks.evaluation_worker import enqueue_evaluation, evaluation_worker_cycle, process_next_evaluation

__all__ = [
    'run_challenge_maintenance',
    'schedule_periodic_maintenance',
    'enqueue_evaluation',
    'evaluation_worker_cycle',
    'process_next_evaluation',
]
