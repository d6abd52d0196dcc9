from chromakeys.cli import main

main()
