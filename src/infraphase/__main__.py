from infraphase.cli.main import main

main()
