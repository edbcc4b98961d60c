from typing import Optional
import logging
from tqdm import tqdm
import time


class ProgressMonitor:
    def __init__(self, total: int, desc: str = "Processing",
                 logger: Optional[logging.Logger] = None,
                 log_every: int = 100, disable: bool = False):
        """Progress bar over a known number of fits or forecast days"""
        self.logger = logger or logging.getLogger('progress')
        self.pbar = tqdm(total=total, desc=desc, disable=disable)
        self.total = total
        self.current = 0
        self.log_every = max(int(log_every), 1)
        self.start_time = time.time()
        self.description = desc

    def update(self, n: int = 1, status: str = ""):
        """Advance by n steps; status is logged at DEBUG"""
        self.current += n
        self.pbar.update(n)
        if status:
            self.pbar.set_postfix_str(status, refresh=False)
            self.logger.debug(f"{self.description}: {status}")

        if self.current % self.log_every == 0 and self.total:
            elapsed = time.time() - self.start_time
            progress = self.current / self.total
            eta = (elapsed / progress) * (1 - progress) if progress > 0 else 0

            self.logger.info(
                f"{self.description}: {self.current}/{self.total} "
                f"({progress*100:.1f}%) - "
                f"Elapsed: {elapsed/60:.1f}m - "
                f"ETA: {eta/60:.1f}m"
            )

    def close(self):
        """Close progress bar and log total time"""
        self.pbar.close()
        total_time = time.time() - self.start_time
        self.logger.info(
            f"Completed {self.description} ({self.current} steps) in {total_time:.1f}s"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
