"""Background scheduler for the periodic evaluation tick."""
import logging
import threading
import schedule

logger = logging.getLogger("opsalert.scheduler")


class EvaluationScheduler:
    def __init__(self, tick, interval_seconds=60):
        self.tick = tick
        self.interval = interval_seconds
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._running = False
        self._stop_event = threading.Event()
        self._callbacks = []
        self._before = []
        self._consecutive_failures = 0

    def before_tick(self, callback):
        """Register callback run before each evaluation (e.g. to refresh metrics)."""
        self._before.append(callback)

    def on_tick(self, callback):
        """Register callback called with the tick result after each run."""
        self._callbacks.append(callback)

    def start(self):
        """Start background evaluation."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()

        self._scheduler.every(self.interval).seconds.do(self._tick_job)

        self._thread = threading.Thread(target=self._run_loop, name="alert-evaluator", daemon=True)
        self._thread.start()
        logger.info(f"Evaluation scheduler started (every {self.interval}s)")

    def stop(self):
        """Stop background evaluation."""
        self._running = False
        self._stop_event.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Evaluation scheduler stopped")

    @property
    def running(self):
        return self._running

    def _run_loop(self):
        # Do an initial evaluation immediately
        self._tick_job()
        while self._running:
            self._scheduler.run_pending()
            self._stop_event.wait(1)

    def _tick_job(self):
        for cb in self._before:
            try:
                cb()
            except Exception as e:
                logger.warning(f"Pre-tick callback error: {e}")
        try:
            result = self.tick()
            self._consecutive_failures = 0
            for cb in self._callbacks:
                try:
                    cb(result)
                except Exception as e:
                    logger.warning(f"Tick callback error: {e}")
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Evaluation tick failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive evaluation failures!")
