# Project Setup Configuration

from setuptools import setup, find_packages

setup(
    name="citadel-keyvault",
    version="0.1.0",
    author="Citadel Archer Team",
    description="Local encrypted key vault with Argon2id and AEAD key wrapping",
    url="https://github.com/yourusername/citadel-keyvault",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Security :: Cryptography",
        "License :: Other/Proprietary License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=[
        "cryptography>=42.0.0",
        "argon2-cffi>=23.1.0",
        "PyNaCl>=1.5.0",
        "structlog>=24.1.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "citadel-keyvault=citadel_keyvault.__main__:main",
        ],
    },
)
