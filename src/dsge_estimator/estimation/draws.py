"""パラメータドローの保持と保存

事前分布・事後分布からのドロー（全パラメータベクトル）を、チェーン番号・反復番号・
受容フラグ・対数事後確率とともに不変な集合として扱う。
DrawStore はタグ付きでメモリに保持し、ディレクトリ指定時は .npz として永続化する。
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import numpy as np

from dsge_estimator.core.exceptions import DrawNotFoundError, ValidationError

__all__ = ["DrawCollection", "DrawKind", "DrawStore"]

logger = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class DrawKind(Enum):
    """ドローの種類"""

    PRIOR = "prior"
    POSTERIOR = "posterior"


def _frozen(array: np.ndarray, dtype: type) -> np.ndarray:
    out = np.array(array, dtype=dtype, copy=True)
    out.flags.writeable = False
    return out


@dataclass(frozen=True)
class DrawCollection:
    """パラメータドローの不変な集合

    Attributes:
        parameter_names: 列（パラメータ）名
        draws: ドロー (n_draws, n_parameters)
        chain_ids: 各ドローのチェーン番号 (n_draws,)
        iterations: 各ドローのチェーン内反復番号 (n_draws,)
        accepted: 各ドローで提案が1つ以上受容されたか (n_draws,)
        log_posteriors: 各ドローの対数事後確率 (n_draws,)
        kind: 事前/事後の区別
        acceptance_rates: ブロック別受容率 (n_chains, n_blocks)
        complete: 中断されずに最後まで生成されたか
    """

    parameter_names: tuple[str, ...]
    draws: np.ndarray
    chain_ids: np.ndarray
    iterations: np.ndarray
    accepted: np.ndarray
    log_posteriors: np.ndarray
    kind: DrawKind = DrawKind.POSTERIOR
    acceptance_rates: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    complete: bool = True

    def __post_init__(self) -> None:
        names = tuple(self.parameter_names)
        draws = np.asarray(self.draws, dtype=float)
        if draws.size == 0:
            draws = draws.reshape(0, len(names))
        if draws.ndim != 2 or draws.shape[1] != len(names):
            raise ValidationError(f"drawsは(n, {len(names)})が必要 (got {draws.shape})")
        n = draws.shape[0]
        object.__setattr__(self, "parameter_names", names)
        object.__setattr__(self, "draws", _frozen(draws, float))
        object.__setattr__(self, "chain_ids", _frozen(self.chain_ids, int))
        object.__setattr__(self, "iterations", _frozen(self.iterations, int))
        object.__setattr__(self, "accepted", _frozen(self.accepted, bool))
        object.__setattr__(self, "log_posteriors", _frozen(self.log_posteriors, float))
        object.__setattr__(
            self, "acceptance_rates", _frozen(np.atleast_2d(self.acceptance_rates), float)
        )
        for name in ("chain_ids", "iterations", "accepted", "log_posteriors"):
            if getattr(self, name).shape != (n,):
                raise ValidationError(f"{name}は({n},)が必要 (got {getattr(self, name).shape})")

    @classmethod
    def empty(
        cls, parameter_names: Sequence[str], kind: DrawKind = DrawKind.POSTERIOR
    ) -> "DrawCollection":
        p = len(parameter_names)
        return cls(
            parameter_names=tuple(parameter_names),
            draws=np.zeros((0, p)),
            chain_ids=np.zeros(0, dtype=int),
            iterations=np.zeros(0, dtype=int),
            accepted=np.zeros(0, dtype=bool),
            log_posteriors=np.zeros(0),
            kind=kind,
        )

    @property
    def n_draws(self) -> int:
        return self.draws.shape[0]

    @property
    def n_parameters(self) -> int:
        return len(self.parameter_names)

    @property
    def chains(self) -> list[int]:
        """含まれるチェーン番号（昇順）"""
        return sorted({int(c) for c in self.chain_ids})

    def column(self, name: str) -> np.ndarray:
        """パラメータ名で列を取り出す"""
        try:
            idx = self.parameter_names.index(name)
        except ValueError:
            raise ValidationError(f"未登録のパラメータ名です: '{name}'") from None
        return self.draws[:, idx]

    def chain(self, chain_id: int) -> "DrawCollection":
        """指定チェーンのドローのみを取り出す"""
        mask = self.chain_ids == chain_id
        rates = self.acceptance_rates
        if rates.shape[0] > chain_id:
            rates = rates[chain_id : chain_id + 1]
        return DrawCollection(
            parameter_names=self.parameter_names,
            draws=self.draws[mask],
            chain_ids=self.chain_ids[mask],
            iterations=self.iterations[mask],
            accepted=self.accepted[mask],
            log_posteriors=self.log_posteriors[mask],
            kind=self.kind,
            acceptance_rates=rates,
            complete=self.complete,
        )

    def stacked(self) -> np.ndarray:
        """チェーン別に並べた配列 (n_chains, n_per_chain, n_parameters)

        チェーン長が異なる場合は最短のチェーンに揃える。
        """
        per_chain = [self.draws[self.chain_ids == c] for c in self.chains]
        if not per_chain:
            return np.zeros((0, 0, self.n_parameters))
        length = min(len(d) for d in per_chain)
        return np.stack([d[:length] for d in per_chain])

    @classmethod
    def concatenate(cls, collections: Sequence["DrawCollection"]) -> "DrawCollection":
        """同じパラメータ名・種類のドロー集合を連結する"""
        if not collections:
            raise ValidationError("連結するドロー集合がありません")
        first = collections[0]
        for c in collections[1:]:
            if c.parameter_names != first.parameter_names:
                raise ValidationError("パラメータ名が一致しないドロー集合は連結できません")
            if c.kind is not first.kind:
                raise ValidationError("種類の異なるドロー集合は連結できません")
        rates = [c.acceptance_rates for c in collections if c.acceptance_rates.size > 0]
        widths = {r.shape[1] for r in rates}
        return cls(
            parameter_names=first.parameter_names,
            draws=np.vstack([c.draws for c in collections]),
            chain_ids=np.concatenate([c.chain_ids for c in collections]),
            iterations=np.concatenate([c.iterations for c in collections]),
            accepted=np.concatenate([c.accepted for c in collections]),
            log_posteriors=np.concatenate([c.log_posteriors for c in collections]),
            kind=first.kind,
            acceptance_rates=np.vstack(rates) if rates and len(widths) == 1 else np.zeros((0, 0)),
            complete=all(c.complete for c in collections),
        )


class DrawStore:
    """タグ付きドロー集合の保存先

    directory を指定しない場合はメモリ内のみに保持する。
    """

    def __init__(self, directory: Path | str | None = None) -> None:
        self.directory = Path(directory) if directory is not None else None
        self._cache: dict[str, DrawCollection] = {}
        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _check_tag(tag: str) -> str:
        if not isinstance(tag, str) or not _TAG_PATTERN.match(tag):
            raise ValidationError(
                f"無効なタグです: {tag!r} (英数字で始まり英数字・'_'・'-'・'.'のみ使用可)"
            )
        return tag

    def _path(self, tag: str) -> Path | None:
        if self.directory is None:
            return None
        return self.directory / f"{tag}.npz"

    def store(self, collection: DrawCollection, tag: str) -> Path | None:
        """ドロー集合をタグ付きで保存する（同じタグは上書き）

        Returns:
            保存先ファイルパス。メモリ内のみの場合はNone。
        """
        self._check_tag(tag)
        self._cache[tag] = collection
        path = self._path(tag)
        if path is not None:
            np.savez(
                path,
                parameter_names=np.array(collection.parameter_names, dtype=str),
                draws=collection.draws,
                chain_ids=collection.chain_ids,
                iterations=collection.iterations,
                accepted=collection.accepted,
                log_posteriors=collection.log_posteriors,
                kind=np.array(collection.kind.value),
                acceptance_rates=collection.acceptance_rates,
                complete=np.array(collection.complete),
            )
            logger.info("ドロー %d 件を保存しました: %s", collection.n_draws, path)
        return path

    def retrieve(self, tag: str) -> DrawCollection:
        """タグのドロー集合を取得する

        Raises:
            DrawNotFoundError: タグが保存されていない場合
        """
        self._check_tag(tag)
        if tag in self._cache:
            return self._cache[tag]
        path = self._path(tag)
        if path is None or not path.exists():
            raise DrawNotFoundError(f"タグ '{tag}' のドローは保存されていません")
        with np.load(path, allow_pickle=False) as archive:
            collection = DrawCollection(
                parameter_names=tuple(str(n) for n in archive["parameter_names"]),
                draws=archive["draws"],
                chain_ids=archive["chain_ids"],
                iterations=archive["iterations"],
                accepted=archive["accepted"],
                log_posteriors=archive["log_posteriors"],
                kind=DrawKind(str(archive["kind"])),
                acceptance_rates=archive["acceptance_rates"],
                complete=bool(archive["complete"]),
            )
        self._cache[tag] = collection
        return collection

    def delete(self, tag: str) -> None:
        """タグのドロー集合を削除する

        Raises:
            DrawNotFoundError: タグが保存されていない場合
        """
        if tag not in self:
            raise DrawNotFoundError(f"タグ '{tag}' のドローは保存されていません")
        self._cache.pop(tag, None)
        path = self._path(tag)
        if path is not None and path.exists():
            path.unlink()

    def tags(self) -> list[str]:
        """保存済みタグの一覧（昇順）"""
        tags = set(self._cache)
        if self.directory is not None:
            tags.update(p.stem for p in self.directory.glob("*.npz"))
        return sorted(tags)

    def __contains__(self, tag: object) -> bool:
        if not isinstance(tag, str):
            return False
        self._check_tag(tag)
        if tag in self._cache:
            return True
        path = self._path(tag)
        return path is not None and path.exists()
