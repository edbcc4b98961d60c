from pathlib import Path
import pickle
import logging
from typing import Optional, Dict, Union


class CheckpointManager:
    """Pickles rolling refits so an interrupted run can resume"""

    def __init__(self, checkpoint_dir: Union[str, Path]):
        self.checkpoint_dir = Path(checkpoint_dir)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger('garch.checkpoint')

    def _path(self, key: str) -> Path:
        return self.checkpoint_dir / f"checkpoint_{key}.pkl"

    def save_checkpoint(self, key: str, data: Dict):
        """Save estimation checkpoint"""
        with open(self._path(key), 'wb') as f:
            pickle.dump(data, f)
        self.logger.debug(f"Saved checkpoint {key}")

    def load_checkpoint(self, key: str) -> Optional[Dict]:
        """Load checkpoint if it exists"""
        checkpoint_file = self._path(key)
        if checkpoint_file.exists():
            with open(checkpoint_file, 'rb') as f:
                return pickle.load(f)
        return None

    def clear(self) -> int:
        """Delete all checkpoints, returning how many were removed"""
        removed = 0
        for path in self.checkpoint_dir.glob("checkpoint_*.pkl"):
            path.unlink()
            removed += 1
        return removed
