from pocketci.cli import main

main()
