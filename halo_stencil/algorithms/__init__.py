"""
Stencil 算法层

- halo：链式拓扑上的 halo 行交换 (Sendrecv)
- stencil：5 点加权平均核与单进程参考实现
"""

from .halo import HaloExchanger, HALO_TAG_UP, HALO_TAG_DOWN
from .stencil import StencilKernel, stencil_serial, W_CENTER, W_NEIGHBOR

__all__ = [
    # Halo Exchange
    "HaloExchanger",
    "HALO_TAG_UP",
    "HALO_TAG_DOWN",
    # Stencil
    "StencilKernel",
    "stencil_serial",
    "W_CENTER",
    "W_NEIGHBOR",
]
