"""Black-box Newton solver for small dense nonlinear systems.

Solves ``r(params, x) = 0`` for the unknowns ``x`` given only a residual
function. The Jacobian is obtained by forward finite differences unless an
analytic Jacobian function is supplied (or ``"autodiff"`` to let JAX
differentiate the residual). Global convergence can be improved with a
backtracking line search on ``0.5 |r|^2``.

Settings are passed per call as a :class:`NewtonOptions` value or a plain
dict with the same keys, so concurrent callers never share state.

Key Functions:
    black_box_newton_solve: Newton iteration with optional line search
    line_search: Quadratic/cubic backtracking along the Newton direction

Example:
    >>> def residual_fn(params, x):
    ...     return x ** 2 - params
    >>> result = black_box_newton_solve(residual_fn, 2.0, [1.0],
    ...                                 options={"use_step_length_control": True})
    >>> result.unknowns  # close to sqrt(2)
"""
import warnings
from dataclasses import dataclass, fields
from typing import Any, Callable, Mapping, Tuple, Union

import jax
import numpy as onp
import scipy.linalg

from macrofem.errors import LineSearchWarning, NewtonSolverError, UsageError
from macrofem.fem import logger

ResidualFn = Callable[[Any, onp.ndarray], onp.ndarray]


@dataclass(frozen=True)
class NewtonOptions:
    """Settings of :func:`black_box_newton_solve`.

    Attributes:
        max_iter (int): Maximum number of Newton iterations.
        fd_step (float): Finite-difference step for the Jacobian.
        tol (float): Convergence tolerance on the max-norm of the residual.
        use_step_length_control (bool): Use the line search.
        doc_progress (bool): Log residuals, unknowns and Jacobians at debug level.
    """

    max_iter: int = 20
    fd_step: float = 1.0e-8
    tol: float = 1.0e-8
    use_step_length_control: bool = False
    doc_progress: bool = False

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "NewtonOptions":
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise UsageError(f"Unknown Newton solver options {sorted(unknown)}",
                             operation="NewtonOptions.from_dict")
        return cls(**options)


@dataclass
class NewtonResult:
    """Converged unknowns and the number of Newton iterations taken."""

    unknowns: onp.ndarray
    n_iter: int


def _as_options(options: Union[NewtonOptions, Mapping[str, Any], None]) -> NewtonOptions:
    if options is None:
        return NewtonOptions()
    if isinstance(options, NewtonOptions):
        return options
    return NewtonOptions.from_dict(options)


def _residuals(residual_fn: ResidualFn, params: Any, x: onp.ndarray, ndof: int) -> onp.ndarray:
    residuals = onp.asarray(residual_fn(params, x), dtype=onp.float64).ravel()
    if residuals.shape != (ndof,):
        raise UsageError(
            f"Residual function returned {residuals.shape[0]} values for {ndof} unknowns",
            operation="black_box_newton_solve",
        )
    return residuals


def fd_jacobian(residual_fn: ResidualFn, params: Any, x: onp.ndarray,
                residuals: onp.ndarray, fd_step: float) -> onp.ndarray:
    """Forward-difference Jacobian ``J[j, i] = d r_j / d x_i``."""
    ndof = x.shape[0]
    jacobian = onp.zeros((ndof, ndof))
    for i in range(ndof):
        backup = x[i]
        x[i] += fd_step
        residuals_pls = _residuals(residual_fn, params, x, ndof)
        jacobian[:, i] = (residuals_pls - residuals) / fd_step
        x[i] = backup
    return jacobian


def line_search(x_old: onp.ndarray, half_residual_squared_old: float, gradient: onp.ndarray,
                residual_fn: ResidualFn, params: Any, newton_dir: onp.ndarray,
                max_step: float) -> Tuple[onp.ndarray, float]:
    """Backtracking line search along ``newton_dir``.

    Finds ``lambda`` such that ``x = x_old + lambda * newton_dir`` gives a
    sufficient decrease of ``f = 0.5 |r|^2``. The first backtrack minimises a
    quadratic model of ``f(lambda)``, later ones a cubic model through the last
    two trial points. ``lambda`` never drops below a tenth of its previous
    value nor exceeds half of it after the first trial.

    Args:
        x_old (numpy.ndarray): Current unknowns.
        half_residual_squared_old (float): ``f`` at ``x_old``.
        gradient (numpy.ndarray): Gradient of ``f`` at ``x_old``, ``J^T r``.
        residual_fn (Callable): ``residual_fn(params, x)``.
        params: Passed through to ``residual_fn``.
        newton_dir (numpy.ndarray): Full Newton step.
        max_step (float): Steps longer than this are scaled down first.

    Returns:
        tuple: ``(x, half_residual_squared)`` at the accepted point. If the step
            becomes negligible, ``x_old`` is returned and a
            :class:`~macrofem.errors.LineSearchWarning` is issued.

    Raises:
        NewtonSolverError: If ``newton_dir`` is not a descent direction.
    """
    min_fct_decrease = 1.0e-4
    convergence_tol_on_x = 1.0e-16
    n = x_old.shape[0]

    newton_dir = onp.array(newton_dir, dtype=onp.float64)
    length = onp.linalg.norm(newton_dir)
    if length > max_step:
        newton_dir *= max_step / length

    slope = float(onp.dot(gradient, newton_dir))
    if slope >= 0.0:
        raise NewtonSolverError(f"Roundoff problem in line search: slope={slope}",
                                operation="line_search")

    test = float(onp.max(onp.abs(newton_dir) / onp.maximum(onp.abs(x_old), 1.0)))
    lambda_min = convergence_tol_on_x / test
    lam = 1.0
    lam_aux = 0.0
    f_aux = 0.0
    while True:
        x = x_old + lam * newton_dir
        residuals = _residuals(residual_fn, params, x, n)
        half_residual_squared = 0.5 * float(onp.dot(residuals, residuals))

        if lam < lambda_min:
            warnings.warn("Line search converged on x only", LineSearchWarning, stacklevel=2)
            return x_old.copy(), half_residual_squared
        if half_residual_squared <= half_residual_squared_old + min_fct_decrease * lam * slope:
            return x, half_residual_squared

        if lam == 1.0:
            proposed = -slope / (2.0 * (half_residual_squared - half_residual_squared_old - slope))
        else:
            r1 = half_residual_squared - half_residual_squared_old - lam * slope
            r2 = f_aux - half_residual_squared_old - lam_aux * slope
            a_poly = (r1 / lam ** 2 - r2 / lam_aux ** 2) / (lam - lam_aux)
            b_poly = (-lam_aux * r1 / lam ** 2 + lam * r2 / lam_aux ** 2) / (lam - lam_aux)
            if a_poly == 0.0:
                proposed = -slope / (2.0 * b_poly)
            else:
                discriminant = b_poly ** 2 - 3.0 * a_poly * slope
                if discriminant < 0.0:
                    proposed = 0.5 * lam
                elif b_poly <= 0.0:
                    proposed = (-b_poly + onp.sqrt(discriminant)) / (3.0 * a_poly)
                else:
                    proposed = -slope / (b_poly + onp.sqrt(discriminant))
            proposed = min(proposed, 0.5 * lam)
        logger.debug(f"Line search: lambda = {lam}, f = {half_residual_squared}, "
                     f"next lambda = {max(proposed, 0.1 * lam)}")
        lam_aux = lam
        f_aux = half_residual_squared
        lam = max(proposed, 0.1 * lam)


def black_box_newton_solve(residual_fn: ResidualFn, params: Any, unknowns: Any,
                           jacobian_fn: Union[ResidualFn, str, None] = None,
                           options: Union[NewtonOptions, Mapping[str, Any], None] = None) -> NewtonResult:
    """Solve ``residual_fn(params, x) = 0`` with Newton's method.

    Args:
        residual_fn (Callable): ``residual_fn(params, x) -> residuals`` with as
            many residuals as unknowns.
        params: Passed unchanged to ``residual_fn`` and ``jacobian_fn``.
        unknowns (array-like): Initial guess; not modified.
        jacobian_fn (Callable or str, optional): ``jacobian_fn(params, x)``
            returning the (n, n) Jacobian ``J[j, i] = d r_j / d x_i``, or
            ``"autodiff"`` to differentiate a JAX-traceable residual. Forward
            finite differences are used if None.
        options (NewtonOptions or dict, optional): Solver settings.

    Returns:
        NewtonResult: Converged unknowns and number of iterations taken.

    Raises:
        NewtonSolverError: If the residual is not below ``tol`` after
            ``max_iter`` iterations, or the line search fails.
        UsageError: If the residual or Jacobian sizes do not match the unknowns.

    Example:
        >>> result = black_box_newton_solve(lambda p, x: x - p, 3.0, [0.0])
        >>> result.n_iter
        1
    """
    opts = _as_options(options)
    x = onp.array(unknowns, dtype=onp.float64).ravel()
    ndof = x.shape[0]

    if jacobian_fn == "autodiff":
        jac_fwd = jax.jacfwd(lambda u: residual_fn(params, u))

        def jacobian_fn(params_, x_):
            return jac_fwd(x_)

    n_iter = 0
    for iloop in range(opts.max_iter):
        residuals = _residuals(residual_fn, params, x, ndof)

        if opts.use_step_length_control:
            half_residual_squared = 0.5 * float(onp.dot(residuals, residuals))
            max_step = 100.0 * max(float(onp.linalg.norm(x)), float(ndof))

        max_res = float(onp.max(onp.abs(residuals)))
        if opts.doc_progress:
            logger.debug(f"Newton iteration {iloop}: max residual = {max_res}")
            for i in range(ndof):
                logger.debug(f"  {i} residual = {residuals[i]}, unknown = {x[i]}")

        if max_res < opts.tol:
            logger.debug(f"Newton solver converged in {n_iter} iterations")
            return NewtonResult(unknowns=x, n_iter=n_iter)

        n_iter += 1

        if jacobian_fn is None:
            jacobian = fd_jacobian(residual_fn, params, x, residuals, opts.fd_step)
        else:
            jacobian = onp.asarray(jacobian_fn(params, x), dtype=onp.float64)
            if jacobian.shape != (ndof, ndof):
                raise UsageError(
                    f"Jacobian has shape {jacobian.shape}, expected {(ndof, ndof)}",
                    operation="black_box_newton_solve",
                )
        if opts.doc_progress:
            logger.debug(f"Jacobian:\n{jacobian}")

        try:
            newton_direction = scipy.linalg.solve(jacobian, residuals)
        except scipy.linalg.LinAlgError as err:
            raise NewtonSolverError(f"Singular Jacobian in Newton iteration {iloop}: {err}",
                                    operation="black_box_newton_solve", n_iter=n_iter) from err

        if opts.use_step_length_control:
            gradient = jacobian.T @ residuals
            x, half_residual_squared = line_search(
                x, half_residual_squared, gradient, residual_fn, params,
                -newton_direction, max_step,
            )
        else:
            x = x - newton_direction

    raise NewtonSolverError(f"Newton solver did not converge in {opts.max_iter} steps",
                            operation="black_box_newton_solve", n_iter=n_iter)
