import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="personal_brain",
    version="0.1.0",
    description="Question answering over your local files: consistent ingestion and grounded RAG answers.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_namespace_packages(include=["src", "src.*"]),
    # Pinning versions to ensure compatibility and consistent CI runs
    install_requires=[
        "chromadb~=0.5.0",
        "fastapi~=0.115.0",
        "httpx~=0.27",
        "langchain~=0.3.0",
        "langchain-community~=0.3.0",
        "langchain-core~=0.3.0",
        "langchain-google-genai~=2.0.0",
        "langchain-openai~=0.2.0",
        "langchain-text-splitters~=0.3.0",
        "pydantic~=2.9",
        "pydantic-settings~=2.5",
        "python-dotenv~=1.0.1",
        "redis~=5.0",
        "rq~=2.0",
        "uvicorn~=0.30",
        "watchdog~=5.0",
    ],
    extras_require={
        "test": [
            "fakeredis[lua]~=2.25",
            "pytest~=8.3",
        ],
    },
    entry_points={"console_scripts": ["brain=src.main:main"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
)
