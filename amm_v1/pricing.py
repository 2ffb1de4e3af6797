"""
Constant-product pricing with a fee on the input side.

Formula: (x + dx * f) * (y - dy) = x * y, with f = numerator / denominator.
Everything is integer arithmetic. Exact-input quotes round the output down
and exact-output quotes round the required input up, so rounding always
favours the pool.
"""
from dataclasses import dataclass

from amm_v1.errors import InsufficientLiquidity, InsufficientReserves


@dataclass(frozen=True)
class FeeSchedule:
    """Fraction of the input that reaches the curve (997/1000 = 0.3% fee)."""
    numerator: int = 997
    denominator: int = 1000

    def __post_init__(self):
        if not 0 < self.numerator < self.denominator:
            raise ValueError(
                f"Fee numerator must be in (0, {self.denominator}), got {self.numerator}"
            )

    @property
    def basis_points(self) -> int:
        """Fee charged, in basis points (rounded down)."""
        return (self.denominator - self.numerator) * 10_000 // self.denominator


DEFAULT_FEE = FeeSchedule()


def _check_reserves(input_reserve: int, output_reserve: int):
    if input_reserve <= 0 or output_reserve <= 0:
        raise InsufficientReserves(
            f"Pool has no price: reserves ({input_reserve}, {output_reserve})"
        )


def get_input_price(input_amount: int, input_reserve: int, output_reserve: int,
                    fee: FeeSchedule = DEFAULT_FEE) -> int:
    """
    Output bought by selling exactly `input_amount`.

    Args:
        input_amount: Amount of the input asset sold
        input_reserve: Pre-trade reserve of the input asset
        output_reserve: Pre-trade reserve of the output asset
        fee: Fee schedule of the pool

    Returns:
        floor(input * num * output_reserve / (input_reserve * den + input * num))
    """
    _check_reserves(input_reserve, output_reserve)
    input_with_fee = input_amount * fee.numerator
    numerator = input_with_fee * output_reserve
    denominator = input_reserve * fee.denominator + input_with_fee
    return numerator // denominator


def get_output_price(output_amount: int, input_reserve: int, output_reserve: int,
                     fee: FeeSchedule = DEFAULT_FEE) -> int:
    """
    Input required to buy exactly `output_amount`.

    The trailing +1 rounds the requirement up; without it an exact-output
    trade could be chained against an exact-input one to skim rounding dust.

    Returns:
        floor(input_reserve * output * den / ((output_reserve - output) * num)) + 1
    """
    _check_reserves(input_reserve, output_reserve)
    if output_amount >= output_reserve:
        raise InsufficientLiquidity(
            f"Requested {output_amount} but the reserve only holds {output_reserve}"
        )
    numerator = input_reserve * output_amount * fee.denominator
    denominator = (output_reserve - output_amount) * fee.numerator
    return numerator // denominator + 1


def invariant(base_reserve: int, token_reserve: int) -> int:
    """The constant product k."""
    return base_reserve * token_reserve
