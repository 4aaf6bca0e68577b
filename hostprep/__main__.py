"""python -m hostprep 入口（sudo 重新执行时使用）"""

from hostprep.cli import main

if __name__ == "__main__":
    main()
