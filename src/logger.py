# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
"""Contains the logger shared by all FactorExpr modules.

FactorExpr logs through the standard library
`logging <https://docs.python.org/3/library/logging.html>`__ module using a
single named logger. Messages are grouped by level:

* ``DEBUG``: graph construction details (node kinds, key sets).
* ``INFO``: solver progress, one line per Gauss–Newton iteration.
* ``WARNING``: numerically suspicious inputs that are still handled.

No handlers are installed by the library. Applications configure output for
``factor_expr.logger.factor_expr_logger`` as usual, e.g.::

    >>> import logging
    >>> logging.basicConfig(
    ...     level=logging.INFO,
    ...     format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    ... )
"""
import logging

logger_name = "factor_expr"
factor_expr_logger = logging.getLogger(logger_name)
