"""hostprep - 不可逆主机装机流程的分阶段编排器"""

__version__ = "0.3.0"
