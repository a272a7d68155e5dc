from setuptools import setup, find_packages

setup(
    name='swarmctl',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    install_requires=[
        'typer',
        'fastapi',
        'uvicorn',
        'paramiko',
        'pyyaml',
        'pydantic>=2',
        'tenacity',
        'python-dotenv',
        'requests'
    ],
    extras_require={
        'test': [
            'pytest',
            'jsonschema',
            'httpx',
        ]
    },
    entry_points={
        'console_scripts': [
            'swarmctl=swarmctl.cli:app'
        ]
    },
    author='Your Name',
    description='CLI and API to bootstrap Docker Swarm clusters over SSH, idempotently',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
