from setuptools import setup, find_packages

setup(
    name="livescribe",
    version="1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "numpy",
        "fastapi",
        "pydantic",
        "uvicorn",
        "python-dotenv",
        "click",
    ],
    extras_require={
        "test": [
            "pytest<9.1",
            "soundfile",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "livescribe=livescribe.main:main",
        ],
    },
    python_requires=">=3.8",
)
