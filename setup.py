from setuptools import setup, find_packages

setup(
    name="vqdistill",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.8",
    install_requires=[
        "torch>=2.0.0",
        "pyyaml>=6.0",
        "httpx>=0.24.0",
        "tqdm>=4.60.0",
        "packaging>=21.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "vqdistill=vqdistill.cli:main",
        ],
    },
)
