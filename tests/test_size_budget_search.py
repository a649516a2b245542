from __future__ import annotations

import pytest

from karuku_sizer.errors import EncodeFailureError, SearchCancelledError, UnsupportedOperationError, ValidationError
from karuku_sizer.size_budget_search import (
    BudgetHit,
    BudgetUnreachable,
    SizeBudgetSearcher,
    require_lossy_format,
    target_size_to_bytes,
)


def _encoder(size_of):
    calls: list[float] = []

    def encode(quality: float) -> bytes:
        calls.append(quality)
        return b"\0" * size_of(quality)

    encode.calls = calls  # type: ignore[attr-defined]
    return encode


def test_linear_thousand_byte_encoder_hits_target() -> None:
    encode = _encoder(lambda q: round(q * 1000))

    result = SizeBudgetSearcher(iterations=7).run(encode, 500)

    assert isinstance(result, BudgetHit)
    assert result.size <= 500
    assert 500 - result.size <= 1000 / 2**7
    assert len(encode.calls) == 7


def test_linear_800k_encoder_scenario() -> None:
    encode = _encoder(lambda q: int(round(q * 800_000)))
    target = target_size_to_bytes(200, "KB")

    result = SizeBudgetSearcher().run(encode, target)

    assert target == 204_800
    assert isinstance(result, BudgetHit)
    assert result.size <= target
    assert result.quality == pytest.approx(0.256, abs=1 / 2**7)
    for trial in result.trials:
        if trial.accepted:
            assert trial.size <= target


def test_best_is_highest_accepted_quality() -> None:
    encode = _encoder(lambda q: round(q * 1000))

    result = SizeBudgetSearcher(iterations=10).run(encode, 700)

    assert isinstance(result, BudgetHit)
    accepted = [t.quality for t in result.trials if t.accepted]
    assert result.quality == max(accepted)


def test_budget_below_minimum_returns_unreachable() -> None:
    encode = _encoder(lambda q: 300 + round(q * 1000))

    result = SizeBudgetSearcher().run(encode, 100)

    assert isinstance(result, BudgetUnreachable)
    assert result.min_bytes == 300
    assert encode.calls[-1] == 0.0
    assert len(encode.calls) == 8


def test_higher_iteration_count_is_more_precise() -> None:
    size_of = lambda q: round(q * 100_000)  # noqa: E731

    coarse = SizeBudgetSearcher(iterations=3).run(_encoder(size_of), 33_333)
    fine = SizeBudgetSearcher(iterations=15).run(_encoder(size_of), 33_333)

    assert isinstance(coarse, BudgetHit) and isinstance(fine, BudgetHit)
    assert coarse.size <= fine.size <= 33_333
    assert 33_333 - fine.size <= 100_000 / 2**15


def test_search_is_deterministic() -> None:
    size_of = lambda q: round(q * 5000)  # noqa: E731

    first = SizeBudgetSearcher().run(_encoder(size_of), 1234)
    second = SizeBudgetSearcher().run(_encoder(size_of), 1234)

    assert first == second


@pytest.mark.parametrize("target", [0, -1, float("nan"), float("inf"), "500", True])
def test_invalid_target_is_rejected_before_encoding(target) -> None:
    encode = _encoder(lambda q: 1)

    with pytest.raises(ValidationError):
        SizeBudgetSearcher().run(encode, target)
    assert encode.calls == []


def test_lossless_format_fails_fast() -> None:
    encode = _encoder(lambda q: 1)

    with pytest.raises(UnsupportedOperationError):
        SizeBudgetSearcher().run(encode, 1000, output_format="png")
    assert encode.calls == []


def test_require_lossy_format_guard() -> None:
    require_lossy_format("jpeg")
    require_lossy_format("webp")
    with pytest.raises(UnsupportedOperationError):
        require_lossy_format("PNG")


def test_encode_failure_propagates_verbatim() -> None:
    failure = EncodeFailureError("boom")

    def encode(quality: float) -> bytes:
        if quality < 0.5:
            raise failure
        return b"\0" * 10_000

    with pytest.raises(EncodeFailureError) as excinfo:
        SizeBudgetSearcher().run(encode, 100)
    assert excinfo.value is failure


def test_cancel_check_stops_between_iterations() -> None:
    encode = _encoder(lambda q: round(q * 1000))
    checks = {"count": 0}

    def cancel_check() -> bool:
        checks["count"] += 1
        return checks["count"] > 3

    with pytest.raises(SearchCancelledError):
        SizeBudgetSearcher().run(encode, 500, cancel_check=cancel_check)
    assert len(encode.calls) == 3


def test_on_trial_reports_progress() -> None:
    seen: list[tuple[int, bool]] = []

    SizeBudgetSearcher(iterations=4).run(
        _encoder(lambda q: round(q * 1000)),
        500,
        on_trial=lambda index, trial: seen.append((index, trial.accepted)),
    )

    assert [index for index, _ in seen] == [1, 2, 3, 4]
    assert seen[0] == (1, True)


@pytest.mark.parametrize("iterations", [0, -3, 2.5, True])
def test_iterations_must_be_positive_int(iterations) -> None:
    with pytest.raises(ValidationError):
        SizeBudgetSearcher(iterations=iterations)


def test_target_size_to_bytes_units() -> None:
    assert target_size_to_bytes(1, "KB") == 1024
    assert target_size_to_bytes(2, "MB") == 2 * 1024 * 1024
    assert target_size_to_bytes("1.5", "mb") == int(1.5 * 1024 * 1024)
    with pytest.raises(ValidationError):
        target_size_to_bytes(0, "KB")
    with pytest.raises(ValidationError):
        target_size_to_bytes(10, "GB")
