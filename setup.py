from setuptools import setup, find_packages

setup(
    name="greeter-streams",
    version="0.1.0",
    description="Greeter - unary and streaming RPC patterns over in-process and gRPC transports",
    author="Greeter Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"greeter.proto": ["*.proto"]},
    install_requires=[
        "grpcio>=1.50.0",
        "grpcio-tools>=1.50.0",
        "protobuf>=4.25.0",
        "opentelemetry-api>=1.14.0",
        "opentelemetry-sdk>=1.14.0",
        "opentelemetry-exporter-otlp>=1.14.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-benchmark",
            "pytest-cov",
            "black",
            "isort",
            "pylint",
        ],
    },
    python_requires=">=3.9",
)
