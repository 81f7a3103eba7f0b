"""Enzyme Protocol v4 fund lifecycle, subscription and redemption flows.

- `Enzyme Finance <https://enzyme.finance/>`__

- `Enzyme specification <https://specs.enzyme.finance/>`__
"""
