"""
Per-observation residual units for rotation-only (panoramic) bundle adjustment.

The solver itself is external: cost objects follow the ceres calling
convention and can be wrapped for pyceres with `make_pyceres_cost`.
"""
