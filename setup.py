from setuptools import setup, find_packages

setup(
    name='kubecheck',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    package_data={
        'kubecheck': ['permission_files/*.yaml'],
    },
    install_requires=[
        'typer[all]',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'pydantic>=2',
        'pyyaml',
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
            'kubecheck=kubecheck.cli:app'
        ]
    },
    description='Installation health checks for Kubernetes: API, version, RBAC, resources, connectivity and image pulls',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.9',
)
