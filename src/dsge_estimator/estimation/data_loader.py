"""観測データの読込と標本期間の指定

CSVフォーマット: 先頭列が日付ラベル（例: "1994Q1"）、残りが観測変数の列。
空欄または "NaN" のセルは欠損値として扱う。
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from dsge_estimator.core.exceptions import ValidationError

__all__ = ["ObservationTable", "SampleWindow", "quarterly_dates"]

_QUARTER_PATTERN = re.compile(r"^(\d{4})Q([1-4])$")
_MISSING_TOKENS = {"", "nan", "na", "."}


def quarterly_dates(n_periods: int, start: str = "1994Q1") -> list[str]:
    """四半期日付ラベルを生成する"""
    match = _QUARTER_PATTERN.match(start)
    if match is None:
        raise ValidationError(f"四半期ラベルは 'YYYYQn' 形式が必要 (got '{start}')")
    year = int(match.group(1))
    quarter = int(match.group(2))
    dates: list[str] = []
    for _ in range(n_periods):
        dates.append(f"{year}Q{quarter}")
        quarter += 1
        if quarter > 4:
            quarter = 1
            year += 1
    return dates


@dataclass(frozen=True)
class ObservationTable:
    """観測データ

    Attributes:
        values: 観測値 (n_periods, n_obs)。欠損はNaN。
        dates: 日付ラベル
        columns: 観測変数名
    """

    values: np.ndarray
    dates: tuple[str, ...]
    columns: tuple[str, ...]

    def __post_init__(self) -> None:
        values = np.atleast_2d(np.asarray(self.values, dtype=float))
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "dates", tuple(self.dates))
        object.__setattr__(self, "columns", tuple(self.columns))
        if values.shape != (len(self.dates), len(self.columns)):
            raise ValidationError(
                f"観測値は({len(self.dates)}, {len(self.columns)})が必要 (got {values.shape})"
            )
        if len(set(self.dates)) != len(self.dates):
            raise ValidationError("日付ラベルが重複しています")

    @property
    def n_periods(self) -> int:
        return self.values.shape[0]

    @property
    def n_obs(self) -> int:
        return self.values.shape[1]

    @classmethod
    def from_csv(cls, path: str | Path) -> "ObservationTable":
        """CSVファイルから観測データを読み込む"""
        filepath = Path(path)
        raw_text = filepath.read_text(encoding="utf-8")
        lines = [line.strip() for line in raw_text.strip().split("\n") if line.strip()]
        if len(lines) < 2:
            raise ValidationError(f"CSVにデータ行がありません: {filepath}")

        header = [col.strip() for col in lines[0].split(",")]
        columns = header[1:]
        dates: list[str] = []
        values = np.full((len(lines) - 1, len(columns)), np.nan)

        for row_idx, line in enumerate(lines[1:]):
            cells = [v.strip() for v in line.split(",")]
            if len(cells) != len(header):
                raise ValidationError(
                    f"{filepath}:{row_idx + 2}: 列数が{len(header)}ではありません (got {len(cells)})"
                )
            dates.append(cells[0])
            for col_idx, cell in enumerate(cells[1:]):
                if cell.lower() in _MISSING_TOKENS:
                    continue
                try:
                    values[row_idx, col_idx] = float(cell)
                except ValueError:
                    raise ValidationError(
                        f"{filepath}:{row_idx + 2}: 数値に変換できません: '{cell}'"
                    ) from None

        return cls(values=values, dates=tuple(dates), columns=tuple(columns))

    def to_csv(self, path: str | Path) -> None:
        """from_csv で再読込できる形式で書き出す"""
        filepath = Path(path)
        lines = ["date," + ",".join(self.columns)]
        for t in range(self.n_periods):
            cells = ["" if np.isnan(v) else f"{v:.8f}" for v in self.values[t]]
            lines.append(f"{self.dates[t]}," + ",".join(cells))
        filepath.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def select(self, columns: Sequence[str]) -> "ObservationTable":
        """指定した列を指定順に取り出す（モデルの観測変数順に並べ替える）"""
        missing = [c for c in columns if c not in self.columns]
        if missing:
            raise ValidationError(f"観測変数の列が見つかりません: {missing}")
        idx = [self.columns.index(c) for c in columns]
        return ObservationTable(
            values=self.values[:, idx], dates=self.dates, columns=tuple(columns)
        )

    def position(self, date: str) -> int:
        """日付ラベルの行番号"""
        try:
            return self.dates.index(date)
        except ValueError:
            raise ValidationError(f"日付ラベルが見つかりません: '{date}'") from None

    def window(self, start: str | None = None, end: str | None = None) -> "ObservationTable":
        """日付ラベルで期間を切り出す（両端を含む）"""
        i0 = 0 if start is None else self.position(start)
        i1 = self.n_periods - 1 if end is None else self.position(end)
        if i0 > i1:
            raise ValidationError(f"開始 '{start}' が終了 '{end}' より後です")
        return ObservationTable(
            values=self.values[i0 : i1 + 1],
            dates=self.dates[i0 : i1 + 1],
            columns=self.columns,
        )


@dataclass(frozen=True)
class SampleWindow:
    """標本期間

    プレサンプル期間はフィルタを通すが尤度には含めない。
    予測開始時点は記録のみで、推定計算には使わない。

    Attributes:
        presample_start: プレサンプル開始
        mainsample_start: 本標本開始
        mainsample_end: 本標本終了
        forecast_start: 予測開始
    """

    presample_start: str | None = None
    mainsample_start: str | None = None
    mainsample_end: str | None = None
    forecast_start: str | None = None

    def apply(self, table: ObservationTable) -> tuple[ObservationTable, int]:
        """標本期間を切り出し、(データ, プレサンプル期間数) を返す"""
        windowed = table.window(self.presample_start, self.mainsample_end)
        if self.mainsample_start is None:
            return windowed, 0
        n_presample = windowed.position(self.mainsample_start)
        return windowed, n_presample
