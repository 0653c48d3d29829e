"""Install platform security package."""

from setuptools import setup, find_packages

setup(
    name='platform-security',
    version='0.1.0',
    packages=find_packages(exclude=['*tests*']),
    python_requires='>=3.8',
    install_requires=[
        "sqlalchemy>=2.0",
        "pytz",
        "python-json-logger",
        "click",
    ],
    extras_require={
        "test": [
            "pytest",
            "hypothesis",
            "mimesis",
        ],
    },
    entry_points={
        "console_scripts": [
            "platform-security=platform_security.cli:cli",
        ],
    },
    zip_safe=False
)
