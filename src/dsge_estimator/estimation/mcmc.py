"""ブロック型Random Walk Metropolis-Hastingsサンプラー

事後モードとヘシアン H を受け取り、H^{-1} を提案共分散としてサンプリングする。
各チェーンで自由パラメータをランダムに分割したブロックごとに
提案 → 受容/棄却 を繰り返す。

チューニング（ブロック数・ステップ幅）はサンプリング中に変更しない。
バーンイン期間のドローは同じ手順で生成したうえで破棄する。
"""

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from dsge_estimator.core.exceptions import EstimationError, SolutionError, ValidationError
from dsge_estimator.core.model import DSGEModel
from dsge_estimator.core.solver import SolverConfig
from dsge_estimator.estimation.draws import DrawCollection, DrawKind
from dsge_estimator.estimation.kalman_filter import KalmanConfig
from dsge_estimator.estimation.likelihood import make_log_posterior, solve_model
from dsge_estimator.parameters.constants import SAMPLER_CONSTANTS

__all__ = [
    "BlockedMetropolisHastings",
    "MCMCConfig",
    "SamplerState",
    "acceptance_probability",
    "sample",
    "sample_prior",
]

logger = logging.getLogger(__name__)

LogPosteriorFn = Callable[[np.ndarray], float]


class SamplerState(Enum):
    """サンプラーの状態"""

    INITIALIZING = "initializing"
    BURNING_IN = "burning_in"
    SAMPLING = "sampling"
    DONE = "done"


@dataclass(frozen=True)
class MCMCConfig:
    """MCMC設定

    Attributes:
        n_blocks: パラメータブロック数（自由パラメータ数で頭打ち）
        n_simulations: チェーンあたりの反復数（バーンインを含む）
        n_burn: 破棄する先頭反復数
        n_chains: チェーン数
        step_size: 提案のスケール。Noneの場合は 2.38/sqrt(ブロックサイズ)。
        seed: 乱数シード
    """

    n_blocks: int = 1
    n_simulations: int = 10_000
    n_burn: int = 1_000
    n_chains: int = 1
    step_size: float | None = None
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.n_blocks < 1:
            raise ValidationError(f"n_blocksは1以上が必要 (got {self.n_blocks})")
        if self.n_simulations < 1:
            raise ValidationError(f"n_simulationsは1以上が必要 (got {self.n_simulations})")
        if not 0 <= self.n_burn < self.n_simulations:
            raise ValidationError(
                f"n_burnは0以上n_simulations({self.n_simulations})未満が必要 (got {self.n_burn})"
            )
        if self.n_chains < 1:
            raise ValidationError(f"n_chainsは1以上が必要 (got {self.n_chains})")
        if self.step_size is not None and not self.step_size > 0.0:
            raise ValidationError(f"step_sizeは正である必要があります (got {self.step_size})")

    @property
    def n_kept(self) -> int:
        """チェーンあたりの保持ドロー数"""
        return self.n_simulations - self.n_burn


def acceptance_probability(lp_candidate: float, lp_current: float) -> float:
    """受容確率 min(1, exp(lp_candidate - lp_current))

    候補の対数事後確率が -inf（またはNaN）なら 0。
    """
    if np.isnan(lp_candidate) or lp_candidate == -np.inf:
        return 0.0
    if lp_current == -np.inf or lp_candidate >= lp_current:
        return 1.0
    return float(np.exp(lp_candidate - lp_current))


class BlockedMetropolisHastings:
    """ブロック型Random Walk Metropolis-Hastingsサンプラー

    Args:
        log_posterior_fn: 自由パラメータベクトル → 対数事後確率
        mode: 事後モード（モデル空間の自由パラメータ）
        hessian: モードでの負の対数事後確率のヘシアン
        config: MCMC設定
        parameter_names: 自由パラメータ名
    """

    def __init__(
        self,
        log_posterior_fn: LogPosteriorFn,
        mode: np.ndarray,
        hessian: np.ndarray,
        config: MCMCConfig | None = None,
        parameter_names: Sequence[str] | None = None,
    ) -> None:
        self._log_posterior_fn = log_posterior_fn
        self._mode = np.asarray(mode, dtype=float)
        self._config = config or MCMCConfig()
        n = self._mode.shape[0]
        self._n_params = n
        self._parameter_names = tuple(parameter_names or [f"param_{i}" for i in range(n)])

        if n == 0:
            raise ValidationError("サンプリング対象の自由パラメータがありません")
        if len(self._parameter_names) != n:
            raise ValidationError(
                f"パラメータ名の数({len(self._parameter_names)})がモードの次元({n})と一致しません"
            )

        hessian = np.asarray(hessian, dtype=float)
        if hessian.shape != (n, n):
            raise ValidationError(f"ヘシアンは({n}, {n})が必要 (got {hessian.shape})")
        hessian = 0.5 * (hessian + hessian.T)
        if not np.all(np.isfinite(hessian)) or np.any(np.linalg.eigvalsh(hessian) <= 0.0):
            raise ValidationError("ヘシアンが正定値ではありません")
        proposal_cov = np.linalg.inv(hessian)
        self._proposal_cov = 0.5 * (proposal_cov + proposal_cov.T)

        n_blocks = self._config.n_blocks
        if n_blocks > n:
            logger.warning(
                "ブロック数 %d が自由パラメータ数 %d を超えるため %d に制限します",
                n_blocks,
                n,
                n,
            )
            n_blocks = n
        self._n_blocks = n_blocks

        self._chain_seeds = np.random.SeedSequence(self._config.seed).spawn(
            self._config.n_chains
        )
        self._acceptance_rates = np.full((self._config.n_chains, n_blocks), np.nan)
        self._stop_event = threading.Event()
        self.state = SamplerState.INITIALIZING

        step = self._config.step_size
        logger.info(
            "MHサンプラー設定（固定チューニング）: パラメータ %d, ブロック %d, ステップ幅 %s, "
            "反復 %d (バーンイン %d), チェーン %d",
            n,
            n_blocks,
            "2.38/sqrt(ブロックサイズ)" if step is None else f"{step:g}",
            self._config.n_simulations,
            self._config.n_burn,
            self._config.n_chains,
        )

    @property
    def n_blocks(self) -> int:
        """実際に使用するブロック数"""
        return self._n_blocks

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return self._parameter_names

    @property
    def acceptance_rates(self) -> np.ndarray:
        """ブロック別受容率 (n_chains, n_blocks)。未実行のチェーンはNaN。"""
        return self._acceptance_rates.copy()

    def stop(self) -> None:
        """次の反復の前にサンプリングを中断する（別スレッドから呼び出し可）"""
        self._stop_event.set()

    def partition(self, rng: np.random.Generator) -> list[np.ndarray]:
        """自由パラメータのインデックスをランダムに互いに素なブロックへ分割する"""
        perm = rng.permutation(self._n_params)
        return [np.sort(b) for b in np.array_split(perm, self._n_blocks)]

    def _block_scale(self, block: np.ndarray) -> float:
        step = self._config.step_size
        if step is None:
            return SAMPLER_CONSTANTS.optimal_scale / np.sqrt(len(block))
        return step

    def step_block(
        self,
        theta: np.ndarray,
        lp: float,
        block: np.ndarray,
        increment: np.ndarray,
        u: float,
        log_posterior_fn: LogPosteriorFn | None = None,
    ) -> tuple[np.ndarray, float, bool]:
        """1ブロックの提案と受容/棄却を行う

        Args:
            theta: 現在の自由パラメータベクトル
            lp: 現在の対数事後確率
            block: 更新するインデックス
            increment: ブロックへの提案増分
            u: 一様乱数 U(0, 1)
            log_posterior_fn: 評価関数。Noneの場合はコンストラクタで渡した関数。

        Returns:
            (theta, lp, accepted) のタプル
        """
        fn = log_posterior_fn or self._log_posterior_fn
        candidate = theta.copy()
        candidate[block] = candidate[block] + increment
        lp_candidate = fn(candidate)
        if u < acceptance_probability(lp_candidate, lp):
            return candidate, lp_candidate, True
        return theta, lp, False

    def _initial_point(
        self, rng: np.random.Generator, fn: LogPosteriorFn
    ) -> tuple[np.ndarray, float]:
        """チェーンの初期値: モード + 小さな摂動（不可ならモード）"""
        perturbation = rng.multivariate_normal(np.zeros(self._n_params), 0.01 * self._proposal_cov)
        start = self._mode + perturbation
        lp = fn(start)
        if np.isfinite(lp):
            return start, lp
        lp = fn(self._mode.copy())
        if not np.isfinite(lp):
            raise EstimationError("モードでの対数事後確率が有限ではありません")
        return self._mode.copy(), lp

    def run_chain(
        self, chain_id: int, log_posterior_fn: LogPosteriorFn | None = None
    ) -> DrawCollection:
        """1チェーンを実行する

        Returns:
            バーンイン後のドロー（最大 n_simulations - n_burn 件）
        """
        cfg = self._config
        if not 0 <= chain_id < cfg.n_chains:
            raise ValidationError(f"chain_idは0以上{cfg.n_chains}未満が必要 (got {chain_id})")
        fn = log_posterior_fn or self._log_posterior_fn

        self.state = SamplerState.INITIALIZING
        rng = np.random.default_rng(self._chain_seeds[chain_id])
        blocks = self.partition(rng)
        chols = [np.linalg.cholesky(self._proposal_cov[np.ix_(b, b)]) for b in blocks]
        scales = [self._block_scale(b) for b in blocks]
        theta, lp = self._initial_point(rng, fn)

        n_kept = cfg.n_kept
        draws = np.empty((n_kept, self._n_params))
        log_posts = np.empty(n_kept)
        accepted = np.zeros(n_kept, dtype=bool)
        iterations = np.arange(cfg.n_burn, cfg.n_simulations)
        block_accepts = np.zeros(self._n_blocks)

        self.state = SamplerState.BURNING_IN if cfg.n_burn > 0 else SamplerState.SAMPLING
        n_done = 0
        complete = True
        for it in range(cfg.n_simulations):
            if self._stop_event.is_set():
                complete = False
                logger.warning("チェーン %d: 反復 %d で中断されました", chain_id, it)
                break
            if it == cfg.n_burn:
                self.state = SamplerState.SAMPLING

            any_accepted = False
            for b, block in enumerate(blocks):
                increment = scales[b] * (chols[b] @ rng.standard_normal(len(block)))
                u = rng.uniform()
                theta, lp, acc = self.step_block(theta, lp, block, increment, u, fn)
                if acc:
                    block_accepts[b] += 1
                    any_accepted = True

            if it >= cfg.n_burn:
                k = it - cfg.n_burn
                draws[k] = theta
                log_posts[k] = lp
                accepted[k] = any_accepted
            n_done += 1

        self.state = SamplerState.DONE
        rates = block_accepts / max(n_done, 1)
        self._acceptance_rates[chain_id] = rates
        logger.info(
            "チェーン %d: ブロック別受容率 %s",
            chain_id,
            np.array2string(rates, precision=3),
        )

        n_recorded = max(n_done - cfg.n_burn, 0)
        return DrawCollection(
            parameter_names=self._parameter_names,
            draws=draws[:n_recorded],
            chain_ids=np.full(n_recorded, chain_id),
            iterations=iterations[:n_recorded],
            accepted=accepted[:n_recorded],
            log_posteriors=log_posts[:n_recorded],
            kind=DrawKind.POSTERIOR,
            acceptance_rates=rates[np.newaxis, :],
            complete=complete,
        )

    def run(self, log_posterior_fns: Sequence[LogPosteriorFn] | None = None) -> DrawCollection:
        """全チェーンを順に実行する

        Args:
            log_posterior_fns: チェーンごとの評価関数。各チェーンに独立した
                モデルの作業用コピーを割り当てる場合に使う。

        Returns:
            全チェーンのドロー。中断された場合は complete=False。
        """
        cfg = self._config
        if log_posterior_fns is not None and len(log_posterior_fns) != cfg.n_chains:
            raise ValidationError(
                f"評価関数の数({len(log_posterior_fns)})がチェーン数({cfg.n_chains})と一致しません"
            )
        self._stop_event.clear()
        collections = []
        for chain_id in range(cfg.n_chains):
            fn = log_posterior_fns[chain_id] if log_posterior_fns is not None else None
            collection = self.run_chain(chain_id, fn)
            collections.append(collection)
            if not collection.complete:
                break

        result = DrawCollection.concatenate(collections)
        if len(collections) < cfg.n_chains:
            result = DrawCollection(
                parameter_names=result.parameter_names,
                draws=result.draws,
                chain_ids=result.chain_ids,
                iterations=result.iterations,
                accepted=result.accepted,
                log_posteriors=result.log_posteriors,
                kind=result.kind,
                acceptance_rates=result.acceptance_rates,
                complete=False,
            )
        return result


def sample(
    model: DSGEModel,
    data: np.ndarray,
    mode: np.ndarray,
    hessian: np.ndarray,
    config: MCMCConfig | None = None,
    *,
    n_presample: int = 0,
    solver_config: SolverConfig | None = None,
    kalman_config: KalmanConfig | None = None,
    sampler_callback: Callable[[BlockedMetropolisHastings], None] | None = None,
) -> DrawCollection:
    """事後分布からサンプリングする

    各チェーンはモデルの独立した作業用コピーで評価する。
    返すドローは固定パラメータを含む全パラメータベクトル。

    Args:
        model: DSGEモデル
        data: (T_obs, n_obs) 観測データ
        mode: 事後モード（自由パラメータ）
        hessian: モードでのヘシアン
        config: MCMC設定
        sampler_callback: 構築したサンプラーを受け取る関数（中断制御用）
    """
    cfg = config or MCMCConfig()
    params = model.parameters

    def make_fn() -> LogPosteriorFn:
        return make_log_posterior(
            model.copy(),
            data,
            n_presample=n_presample,
            reject_numerical=True,
            solver_config=solver_config,
            kalman_config=kalman_config,
        )

    chain_fns = [make_fn() for _ in range(cfg.n_chains)]
    sampler = BlockedMetropolisHastings(chain_fns[0], mode, hessian, cfg, params.free_names)
    if sampler_callback is not None:
        sampler_callback(sampler)
    free_draws = sampler.run(chain_fns)
    return _expand_draws(free_draws, model)


def _expand_draws(collection: DrawCollection, model: DSGEModel) -> DrawCollection:
    """自由パラメータのドローを全パラメータベクトルに展開する"""
    params = model.parameters
    full = np.array([params.expand(d) for d in collection.draws]).reshape(-1, len(params))
    return DrawCollection(
        parameter_names=tuple(params.names),
        draws=full,
        chain_ids=collection.chain_ids,
        iterations=collection.iterations,
        accepted=collection.accepted,
        log_posteriors=collection.log_posteriors,
        kind=collection.kind,
        acceptance_rates=collection.acceptance_rates,
        complete=collection.complete,
    )


def sample_prior(
    model: DSGEModel,
    n_draws: int,
    *,
    seed: int | None = None,
    require_solution: bool = False,
    solver_config: SolverConfig | None = None,
) -> DrawCollection:
    """事前分布からパラメータをサンプリングする

    Args:
        model: DSGEモデル（レジストリは変更しない）
        n_draws: ドロー数
        seed: 乱数シード
        require_solution: Trueの場合、一意な安定解を持たないドローを引き直す

    Raises:
        EstimationError: 引き直しの上限に達した場合
    """
    if n_draws < 0:
        raise ValidationError(f"n_drawsは0以上が必要 (got {n_draws})")
    work = model.copy()
    params = work.parameters
    rng = np.random.default_rng(seed)
    max_attempts = SAMPLER_CONSTANTS.prior_draw_max_attempts

    free_draws = np.empty((n_draws, params.n_free))
    log_priors = np.empty(n_draws)
    for i in range(n_draws):
        for _ in range(max_attempts):
            theta = params.sample_prior(rng)
            if not params.in_support(theta):
                continue
            if require_solution:
                params.set_free_values(theta)
                try:
                    solve_model(work, solver_config)
                except SolutionError:
                    continue
            break
        else:
            raise EstimationError(
                f"{max_attempts}回の引き直しで有効な事前ドローが得られませんでした"
            )
        free_draws[i] = theta
        log_priors[i] = params.log_prior(theta)

    logger.info("事前分布から %d 件をサンプリングしました", n_draws)
    collection = DrawCollection(
        parameter_names=tuple(params.free_names),
        draws=free_draws,
        chain_ids=np.zeros(n_draws, dtype=int),
        iterations=np.arange(n_draws),
        accepted=np.ones(n_draws, dtype=bool),
        log_posteriors=log_priors,
        kind=DrawKind.PRIOR,
    )
    return _expand_draws(collection, work)
