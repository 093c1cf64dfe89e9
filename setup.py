from setuptools import setup, find_packages

setup(
    name="planea",
    version="0.1.0",
    packages=find_packages(include=["planea_common", "planea_server*", "planea_client"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2.0",
        "httpx",
    ],
    entry_points={
        "console_scripts": ["planea-server=planea_server.main:run"],
    },
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
