import jax.numpy as jnp
import matplotlib.pyplot as plt

from factor_expr.config import enable_x64
from factor_expr.core.math3d import rot_z
from factor_expr.core.types import Key, Values
from factor_expr.optimization.solvers import GNConfig, gauss_newton
from factor_expr.slam.expression_factor import ExpressionFactor
from factor_expr.slam.manifold import Rot2, Unit3
from factor_expr.slam.measurements import mag_bearing_expression
from factor_expr.world.visualization import plot_expression_graph


def build_problem(yaw: float = -0.1):
    # Earth field near Atlanta (NED, nT) seen through a scaled, biased sensor
    nM = jnp.array([22653.29982, -1956.83010, 44202.47862])
    scale = 255.0 / 50000.0
    bias = jnp.array([10.0, -10.0, 50.0])
    measured = scale * rot_z(yaw).T @ nM + bias

    bearing_key = Key(0)
    expr = mag_bearing_expression(
        bearing_key,
        scale * float(jnp.linalg.norm(nM)),
        Unit3(nM),
        bias,
    )
    factor = ExpressionFactor(expr, measured, sigma=0.25)
    return factor, bearing_key


def main():
    enable_x64()

    factor, bearing_key = build_problem(yaw=-0.1)
    initial = Values({bearing_key: Rot2(0.3)})

    print("Initial error:", factor.error(initial))
    result = gauss_newton([factor], initial, GNConfig(max_iters=10))
    print("Estimated bearing:", result.at(bearing_key))
    print("Final error:", factor.error(result))

    # Inspect the measurement model graph
    plot_expression_graph(factor.expression, title="Magnetometer bearing model")
    plt.show()


if __name__ == "__main__":
    main()
