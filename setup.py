from setuptools import setup, find_packages

setup(
    name="ghostedit",
    version="0.1.0",
    description="ghostedit — inline ghost-text completion and chunk rewriting against a local LLM",
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.8",
    install_requires=[
        "requests",
        "PyQt5",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ghostedit=ghostedit.main:main",
        ],
    },
)
