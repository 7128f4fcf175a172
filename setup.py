from setuptools import find_packages, setup

setup(
    name="ibfe",
    version="0.1.0",
    description="Immersed boundary finite element coupling engine",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "petsc4py",
        "mpi4py",
        "pyyaml",
        "pyvista",
        "meshio",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ibfe-run=ibfe.cli.run_ibfe:main",
        ],
    },
)
