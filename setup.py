"""Setup configuration for releasekpi"""

from setuptools import setup, find_packages

setup(
    name="release-kpi-engine",
    version="0.1.0",
    description=(
        "Release identification and multi-release KPI engine for test "
        "management data: planned scope, coverage, results and history."
    ),
    author="Release KPI Engine Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "release-kpi-engine=releasekpi.main:main",
        ],
    },
)
