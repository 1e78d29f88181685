# Copyright (c) 2025.
# This file is part of FactorExpr, released under the MIT License.
