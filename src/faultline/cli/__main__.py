from faultline.cli.main import main

main()
