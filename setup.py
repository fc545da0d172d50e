"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/zackees/avrforge"
KEYWORDS = "embedded arduino avr avrdude codegen compiler firmware microcontroller"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    with open(os.path.join(HERE, "src", "avrforge", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("__version__ not found")


if __name__ == "__main__":
    setup(
        name="avrforge",
        version=read_version(),
        description="Peripheral code generation, building and flashing for AVR boards",
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.9",
        package_dir={"": "src"},
        packages=find_packages("src"),
        install_requires=[
            "pyserial>=3.5",
            "psutil>=5.9",
        ],
        extras_require={
            "test": ["pytest>=7.0"],
        },
        entry_points={
            "console_scripts": [
                "avrforge=avrforge.cli:main",
            ],
        },
        package_data={"avrforge.codegen": ["catalogs/*.json"]},
        include_package_data=True)
