from setuptools import setup, find_packages

setup(
    name="oneshot-scheduler",
    version="0.1.0",
    description="Minimal one-shot task scheduler with cancel and reschedule",
    python_requires=">=3.10",
    packages=find_packages(include=["oneshot", "oneshot.*"]),
    install_requires=[
        "python-dotenv>=1.0.0",
        "loguru>=0.7.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
)
