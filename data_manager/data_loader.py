"""
Price loader for daily index data.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from data_manager.data_validator import PriceValidator
from garch.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class PriceLoader:
    def __init__(self, price_column: str = 'Adj Close', date_column: str = 'Date',
                 validator: Optional[PriceValidator] = None):
        """Initialize loader with the column names of the input CSV."""
        self.price_column = price_column
        self.date_column = date_column
        self.validator = validator or PriceValidator()

    def _resolve_column(self, df: pd.DataFrame, name: str) -> str:
        if name in df.columns:
            return name
        # Yahoo-style exports differ only in case ('Date' vs 'date')
        matches = [col for col in df.columns if str(col).lower() == name.lower()]
        if not matches:
            raise InvalidInputError(
                f"Column '{name}' not found, available: {list(df.columns)}", stage='input')
        return matches[0]

    def load(self, file_path: Union[str, Path]) -> pd.Series:
        """
        Load adjusted closing prices from CSV.

        Returns:
            Price series indexed by date, chronologically sorted
        """
        logger.info(f"Loading prices from {file_path}")
        df = pd.read_csv(file_path)

        date_col = self._resolve_column(df, self.date_column)
        price_col = self._resolve_column(df, self.price_column)

        df[date_col] = pd.to_datetime(df[date_col])
        df = df.sort_values(date_col)
        if df[date_col].duplicated().any():
            n_dup = int(df[date_col].duplicated().sum())
            logger.warning(f"Dropping {n_dup} duplicated dates, keeping the last quote")
            df = df.drop_duplicates(subset=date_col, keep='last')

        prices = pd.Series(
            pd.to_numeric(df[price_col], errors='coerce').values,
            index=pd.DatetimeIndex(df[date_col].values, name='date'),
            name='price',
        )

        is_valid, issues = self.validator.validate(prices)
        for issue in issues:
            logger.warning(issue)
        if not is_valid:
            raise InvalidInputError(
                f"Price data failed validation: {'; '.join(issues)}", stage='input')

        logger.info(
            f"Loaded {len(prices):,} prices from {prices.index[0].date()} "
            f"to {prices.index[-1].date()}")
        return prices
