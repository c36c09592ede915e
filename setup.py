from setuptools import find_packages, setup

setup(
    name="cpu_llm_kernels",
    version="0.1.0",
    description="Strided tensor views and CPU attention/RoPE kernels for transformer inference",
    python_requires=">=3.9",
    packages=find_packages(include=["cpu_llm_kernels", "cpu_llm_kernels.*"]),
    # torch>=2.3 for the uint16/uint32/uint64 storage dtypes.
    install_requires=["torch>=2.3"],
    extras_require={"test": ["pytest"]},
)
