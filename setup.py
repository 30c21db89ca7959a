from setuptools import setup, find_packages

setup(
    name="idsafe",
    version="0.1.0",
    description="IDSafe: threshold-approved identity registry with admin-managed validators",
    python_requires=">=3.9",
    packages=find_packages(include=["idsafe", "idsafe.*"]),
    install_requires=["pyyaml>=6.0.0"],
    extras_require={
        "api": ["fastapi>=0.110.0", "uvicorn>=0.23.0"],
        "dev": ["pytest>=7.4.0", "fastapi>=0.110.0", "uvicorn>=0.23.0", "httpx>=0.24.0"],
    },
    entry_points={"console_scripts": ["idsafe=idsafe.cli:main"]},
    include_package_data=True,
    package_data={"idsafe": ["genesis/*.yaml"]},
    keywords=["identity", "registry", "threshold", "approval", "cli"],
    license="Apache-2.0",
)
