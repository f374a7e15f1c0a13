from setuptools import setup, find_packages

setup(
    name="heartid",
    version="0.1.0",
    description="Heart-rate biometric matching, decision and progressive lockout engine",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
        "cryptography>=41.0",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "heartid=main:main",
        ]
    },
)
