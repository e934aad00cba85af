import setuptools
from pathlib import Path

ROOT = Path(__file__).parent


def read_requirements(filename: str = "requirements.txt") -> list[str]:
    req_path = ROOT / filename
    if not req_path.exists():
        return []
    reqs: list[str] = []
    for line in req_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        reqs.append(line)
    return reqs


long_description = (ROOT / "README_PYPI.md").read_text(encoding="utf-8")

setuptools.setup(
    name="fastumap",
    version="0.1.0a0",  # PEP 440 compliant
    description=(
        "Differentiable pairwise Euclidean distance for embedding optimization, "
        "with a NumPy CPU backend and a just-in-time compiled CUDA backend."
    ),
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Apache-2.0",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    package_dir={"": "src"},
    packages=setuptools.find_namespace_packages(where="src", include=["fastumap*"]),
    python_requires=">=3.10",
    install_requires=read_requirements(),
    extras_require={
        "cuda": ["cupy-cuda12x"],
        "test": ["pytest"],
    },
    zip_safe=False,
)
